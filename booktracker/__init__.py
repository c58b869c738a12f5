"""Book Tracker API: authentication and session management."""
