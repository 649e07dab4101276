from __future__ import annotations

from pathlib import Path

from fastapi.templating import Jinja2Templates

from .listing import DirectoryListing

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'

templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def render_listing(listing: DirectoryListing) -> str:
    return templates.get_template('listing.html').render(listing=listing)
