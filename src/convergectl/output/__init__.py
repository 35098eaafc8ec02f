"""Rich and JSON rendering of ServiceResult payloads."""
