"""Registration form logic: validators, avatar pipeline and the students API client."""
