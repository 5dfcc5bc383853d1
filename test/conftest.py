import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_repo(tmp_path: Path, name: str = "billing.db"):
    from billing.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    return repo


def add_customer(repo, identification: str = "1-0101-0101", name: str = "Ana Mora") -> int:
    from billing.services.customer_service import CustomerService

    return CustomerService(repo).add_customer(identification, name, "San Jose", "2222-0000", "ana@example.com")


def count_rows(repo, table: str) -> int:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM {table}")
    n = int(cur.fetchone()[0])
    conn.close()
    return n
