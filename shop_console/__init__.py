"""PrintHub shop console: the shop owner's live print queue."""
