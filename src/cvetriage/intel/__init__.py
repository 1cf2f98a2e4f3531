"""Upstream vulnerability feed clients (CISA KEV, NVD, EPSS, Shodan CVEDB)."""
