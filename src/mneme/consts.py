"""Package-wide constants that are not domain tuning knobs."""

VERSION = "0.3.0"
APP_NAME = "mneme"
