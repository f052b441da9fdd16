"""Connection management and settings shared by Studio Connect frontends."""
