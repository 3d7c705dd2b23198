import os
from pathlib import Path
import tempfile

# pickem.db creates the database directory on import; keep that out of the repo.
os.environ.setdefault("SQLITE_DB_PATH", str(Path(tempfile.mkdtemp(prefix="pickem-tests-")) / "db.sqlite"))
