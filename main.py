"""
Main entry point for the sensitivity label migration.

  python main.py --mode discovery --label "Confidential"
  python main.py --mode dry_run --label "Confidential" --target-label-id <guid>
  python main.py --mode live --label "Confidential" --target-label-id <guid>

Settings can also come from config.json and .env; see config.example.json.
"""

from label_migrator.cli import main

if __name__ == '__main__':
    raise SystemExit(main())
