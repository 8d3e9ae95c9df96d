import os

# Keep test runs from writing rotating log files into the project tree.
os.environ.setdefault("TXFUZZ_LOG_TO_FILE", "false")
