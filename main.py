"""
Wrapper to run the cmd-ai CLI from a source checkout.

Usage:
  python main.py list only hidden files in /etc
  python main.py --explain --dry find large log files
"""

from cmd_ai import main


if __name__ == "__main__":
    raise SystemExit(main())
