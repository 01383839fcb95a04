"""CLI script to import a CSV/JSON question bank into an existing exam.
Usage: python scripts/import_questions.py EXAM_ID FILE [--dry-run]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from licensing_exams.database import engine, create_db_and_tables
from licensing_exams import services


def main(exam_id: int, path: pathlib.Path, dry_run: bool = False) -> int:
    """Import `path` into exam `exam_id` and print a summary.

    Invalid rows are listed with their zero-based index and skipped.
    """
    if not path.exists():
        print(f'File not found: {path}')
        return 1
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.CatalogService(session)
        try:
            result = svc.import_file(exam_id, path.read_bytes(), path.name, dry_run=dry_run)
        except ValueError as e:
            print(f'Error importing {path}: {e}')
            return 1
    for err in result['errors']:
        print(f"row {err['index']}: {err['error']}")
    label = 'Would create' if dry_run else 'Created'
    print(f"{label} {result['valid']} questions, {len(result['errors'])} errors")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('exam_id', type=int, help='Target exam id')
    parser.add_argument('file', type=pathlib.Path, help='CSV or JSON file')
    parser.add_argument('--dry-run', action='store_true', help='Validate only, do not insert')
    args = parser.parse_args()
    sys.exit(main(args.exam_id, args.file, dry_run=args.dry_run))
