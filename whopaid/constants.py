"""Global constants for the whopaid application."""

# Collection names
USERS_COLLECTION = "users"
GROUPS_COLLECTION = "groups"
EXPENSES_COLLECTION = "expenses"
SETTLEMENTS_COLLECTION = "settlements"

# Firestore limits a batch to 500 writes
FIRESTORE_BATCH_LIMIT = 400

# Currency-related constants
DEFAULT_GROUP_CURRENCY = "RON"
PIVOT_CURRENCY = "USD"
EXCHANGE_RATE_API_URL = "https://api.exchangerate-api.com"

# Obligation directions, relative to the viewing user
DIRECTION_DEBT = "debt"
DIRECTION_CREDIT = "credit"

# Email-related constants
REMINDER_TEMPLATE = "email/balance_reminder.html"
