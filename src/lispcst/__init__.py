from lispcst import logconfig

logconfig.configure_root_logger()
