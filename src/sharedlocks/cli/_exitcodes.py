"""Process exit codes used by the sharedlock CLI."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
DATABASE_ERROR = 3
EXECUTION_FAILURE = 4
LOCK_TIMEOUT = 5
LOCK_ERROR = 6
