"""Allow ``python -m patent_browser``."""

from patent_browser.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
