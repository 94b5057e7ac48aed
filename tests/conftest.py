import os

# Settings are read at import time: keep test runs off the local disk and off Redis
os.environ.setdefault("ENV", "local")
os.environ.setdefault("STORAGE_BACKEND", "memory")
