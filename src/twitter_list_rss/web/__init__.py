"""HTTP surface for the RSS feed and service status."""
