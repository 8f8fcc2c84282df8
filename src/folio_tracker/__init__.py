"""folio-tracker: personal-finance holdings tracker with live price refresh."""

__version__ = "0.1.0"
