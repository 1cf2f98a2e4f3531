"""cvetriage — build the CVE triage dashboard dataset from NVD and CISA KEV."""

__version__ = "0.1.0"
