"""Keep-the-newest-N retention for OpenStack Glance image families."""

__version__ = "0.1.0"
