"""Pytest configuration and fixtures for qb-sql tests."""

import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from qb_sql.catalog import SchemaCatalog
from qb_sql.mapping import ControlBinding, ControlMapping


# =============================================================================
# FAKE DATABASE
# =============================================================================

class FakePgError(Exception):
    """Stands in for a psycopg2 error: carries ``pgcode`` and ``pgerror``."""

    def __init__(self, pgcode: Optional[str], pgerror: str):
        super().__init__(pgerror)
        self.pgcode = pgcode
        self.pgerror = pgerror


_CREATES = re.compile(r"CREATE\s+(?:OR\s+REPLACE\s+)?(?:VIEW|TABLE|FUNCTION)\s+([\w.\"]+)", re.I)
_DROPS = re.compile(r"DROP\s+(?:VIEW|TABLE|FUNCTION)\s+(?:IF\s+EXISTS\s+)?([\w.\"]+)", re.I)
_CASCADE = re.compile(r"\bCASCADE\b", re.I)
_READS = re.compile(r"\b(?:FROM|JOIN)\s+([\w.\"]+)", re.I)


def _bare(name: str) -> str:
    return name.split(".")[-1].strip('"').lower()


class FakeExecutor:
    """In-memory executor: statements may only read relations created earlier.

    A read of an unknown relation raises 42P01 like the real server would;
    ``fail_with`` maps a substring of a statement to a forced (code, message),
    and with ``fail_once`` each forced failure fires a single time. A plain
    drop of an object others read from raises 2BP01; ``CASCADE`` removes the
    dependents too. A failed transaction leaves ``created`` untouched.
    """

    def __init__(self, created: Optional[Set[str]] = None, fail_with=None, fail_once: bool = False):
        self.created = created if created is not None else set()
        self.fail_with = dict(fail_with or {})
        self.fail_once = fail_once
        self.depends_on: Dict[str, Set[str]] = {}
        self.transactions: List[List[Tuple[str, tuple]]] = []
        self.queries: List[Tuple[str, tuple]] = []
        self.connected = False
        self.closed = False

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed = True

    def execute(self, sql: str, params: tuple = ()) -> list:
        self.queries.append((sql, params))
        return []

    def run_transaction(self, steps: Sequence[Tuple[str, tuple]]) -> None:
        self.transactions.append(list(steps))
        created = set(self.created)
        depends_on = {name: set(reads) for name, reads in self.depends_on.items()}
        for sql, _ in steps:
            for needle, (code, message) in list(self.fail_with.items()):
                if needle in sql:
                    if self.fail_once:
                        del self.fail_with[needle]
                    raise FakePgError(code, message)
            drop = _DROPS.match(sql.strip())
            if drop:
                self._drop(_bare(drop.group(1)), bool(_CASCADE.search(sql)), created, depends_on)
                continue
            reads = set()
            for ref in _READS.findall(sql):
                name = _bare(ref)
                if name not in created and not ref.startswith("("):
                    raise FakePgError("42P01", f'relation "{name}" does not exist')
                reads.add(name)
            for name in (_bare(n) for n in _CREATES.findall(sql)):
                created.add(name)
                depends_on[name] = reads - {name}
        self.created.clear()
        self.created.update(created)
        self.depends_on = depends_on

    @staticmethod
    def _drop(name: str, cascade: bool, created: Set[str], depends_on: Dict[str, Set[str]]) -> None:
        dependents = {other for other, reads in depends_on.items() if name in reads and other in created}
        if dependents and not cascade:
            raise FakePgError(
                "2BP01", f"cannot drop view {name} because other objects depend on it"
            )
        for other in dependents:
            FakeExecutor._drop(other, cascade, created, depends_on)
        created.discard(name)
        depends_on.pop(name, None)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


# =============================================================================
# MAPPING / CATALOG FIXTURES
# =============================================================================

@pytest.fixture
def customer_mapping() -> ControlMapping:
    """frmCustomers.txtID is bound to customers.customer_id."""
    return ControlMapping([
        ControlBinding.create("frmCustomers", "txtID", "Customers", "Customer_ID"),
        ControlBinding.create("frmOrders", "cboStatus", "Orders", "Status"),
    ])


@pytest.fixture
def catalog() -> SchemaCatalog:
    cat = SchemaCatalog(schema="app")
    cat.add_table("orders", {
        "order_id": "integer",
        "customer_id": "integer",
        "order_date": "timestamp without time zone",
        "total": "numeric",
    })
    cat.add_table("customers", {"customer_id": "integer", "name": "text"})
    return cat
