"""
Module entry point for: python -m markerfill

    python -m markerfill upload <pdf_path>
    python -m markerfill generate <template_id> --set msr_daily=100.5
    python -m markerfill serve
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
