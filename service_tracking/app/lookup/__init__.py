"""Cache-aside lookup orchestration."""
