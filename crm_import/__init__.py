"""CRM spreadsheet importer (offer funnels and spare-part catalog)."""

__version__ = "0.1.0"
