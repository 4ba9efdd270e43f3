from ..db import Base  # noqa: F401
