"""Compare the lottery models against the configured database schema.

Exit code 0 when the run store matches the models, 1 when Alembic would
emit operations, 2 when the comparison itself failed.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Engine

from fairdraw.db.engine import make_engine
from fairdraw.models import Base


def _flatten_ops(ops, depth: int = 0) -> list[str]:
    lines = []
    for op in ops:
        lines.append(f"{'  ' * depth}- {op}")
        lines.extend(_flatten_ops(getattr(op, "ops", None) or [], depth + 1))
    return lines


def pending_operations(engine: Engine) -> list[str]:
    """Return the operations a fresh autogenerate run would add."""
    with engine.connect() as connection:
        context = MigrationContext.configure(
            connection=connection,
            opts={
                "compare_type": True,
                "compare_server_default": True,
                "render_as_batch": connection.dialect.name == "sqlite",
            },
        )
        upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    if upgrade_ops is None or upgrade_ops.is_empty():
        return []
    return _flatten_ops(upgrade_ops.ops)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--db-url", help="Database URL (defaults to DB_URL)")
    args = parser.parse_args(argv)

    engine = make_engine(args.db_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        ops = pending_operations(engine)
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2
    if not ops:
        print(f"Schema drift check: OK for {url_display}.")
        return 0
    print(f"Schema drift check: FAILED for {url_display}. Pending operations:")
    print("\n".join(ops))
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
