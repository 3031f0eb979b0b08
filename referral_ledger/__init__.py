"""Commission attribution and reconciliation service for a multi-tier referral program."""
