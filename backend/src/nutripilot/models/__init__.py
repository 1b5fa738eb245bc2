from . import foods, logs, targets  # noqa: F401  (register tables)
