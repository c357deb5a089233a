"""VermiLinks vermicompost monitor - telemetry sync for the dashboard."""

__version__ = "0.1.0"
