"""Daily inspection logbook with field-level autosave for animal-care facilities."""

__version__ = "0.1.0"
