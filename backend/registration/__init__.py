"""Student registration: REST backend and registration form logic."""
