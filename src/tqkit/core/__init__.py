"""Settings and exceptions shared by every tqkit subpackage."""
