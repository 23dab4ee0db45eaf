"""
HTML print template: one fixed-size block for the title and one per page.
"""

from __future__ import annotations

from typing import Mapping

from jinja2 import Template

from storytime.book.models import Book

BLOCK_SELECTOR = ".print-block"

PAGE_WIDTH_IN = 8
PAGE_HEIGHT_IN = 11

PRINT_TEMPLATE = Template(
    r"""
<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>
  @page { size: {{ width_in }}in {{ height_in }}in; margin: 0; }
  * { box-sizing: border-box; }
  html, body { margin: 0; padding: 0; background: #fffef5; }
  body { font-family: Georgia, 'Times New Roman', serif; color: #2F2A40; }
  .print-block {
    width: {{ width_in }}in; height: {{ height_in }}in;
    overflow: hidden; position: relative;
    display: flex; flex-direction: column; align-items: center; justify-content: center;
    page-break-after: always;
  }
  .title-block { background: #6C4FD3; color: #ffffff; text-align: center; padding: 1in; }
  .title-block h1 { font-size: 40pt; margin: 0 0 0.3in 0; }
  .title-block p { font-size: 18pt; margin: 0; color: #FFB347; }
  .art { width: 100%; height: 8.25in; display: flex; align-items: center; justify-content: center; background: #E8F5FF; }
  .art img { width: 100%; height: 100%; object-fit: cover; }
  .caption {
    flex: 1; width: 100%; padding: 0.35in 0.6in;
    display: flex; align-items: center; justify-content: center;
    font-size: 17pt; line-height: 1.4; text-align: center; background: #F5F1FF;
  }
  .epilogue .caption { font-style: italic; }
</style>
</head>
<body>
  <section class="print-block title-block">
    <h1>{{ title }}</h1>
    <p>A storybook adventure starring {{ lead_name }} and {{ companion }}</p>
  </section>
  {% for page in pages %}
  <section class="print-block page {{ page.role }}" data-page="{{ page.page_number }}">
    <div class="art">{% if page.image_url %}<img src="{{ page.image_url }}" alt="Page {{ page.page_number }}">{% endif %}</div>
    <div class="caption">{{ page.text }}</div>
  </section>
  {% endfor %}
</body>
</html>
""",
    autoescape=True,
)


def book_title(book: Book) -> str:
    return book.title or f"{book.lead_name} and {book.companion}"


def render_print_html(book: Book, image_urls: Mapping[int, str]) -> str:
    """
    Render the print document for ``book``.

    ``image_urls`` maps page numbers to short-lived image links; pages without
    an entry are rendered with their caption only.
    """
    pages = [
        {
            "page_number": page.page_number,
            "role": page.role.value,
            "text": page.text,
            "image_url": image_urls.get(page.page_number),
        }
        for page in book.pages
    ]
    return PRINT_TEMPLATE.render(
        title=book_title(book),
        lead_name=book.lead_name,
        companion=book.companion,
        pages=pages,
        width_in=PAGE_WIDTH_IN,
        height_in=PAGE_HEIGHT_IN,
    )
