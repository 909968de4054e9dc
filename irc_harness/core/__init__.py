"""Settings, logging and error taxonomy shared by the harness."""
