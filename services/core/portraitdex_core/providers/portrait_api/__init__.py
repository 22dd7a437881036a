"""Portrait profile API integration."""
