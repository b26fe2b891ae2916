"""Turn one of two WiFi radios into a NAT'd access point, keeping the other as uplink."""

__version__ = "0.1.0"
