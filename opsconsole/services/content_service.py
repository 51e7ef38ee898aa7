"""
Content Service — news HTML post-processing, category tree, upload decoding.
"""

import re
import base64
import binascii
import logging

logger = logging.getLogger(__name__)

CATEGORY_TYPE = 1
ARTICLE_TYPE = 2
PROTECTED_ALIAS_PREFIX = "app_setting_"

# Quill alignment classes -> inline styles (the H5 webview ships no Quill CSS)
ALIGN_REPLACEMENTS = [
    ('class="ql-align-center"', 'style="text-align:center"'),
    ('class="ql-align-right"', 'style="text-align:right"'),
    ('class="ql-align-justify"', 'style="text-align:justify"'),
]

H5_HEAD = """<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta http-equiv="X-UA-Compatible" content="ie=edge">
  <style>
	  h1 {
		  text-align: center;
	  }
	  img {
		  width: 100%;
		  height: auto;
	  }
  </style>
</head>"""

IMG_STYLE = "<img style='margin:0 auto;display:block;width:100%' "

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,", re.IGNORECASE)


def url_path_for(content_id: int) -> str:
    return f"/article/{content_id}.html"


def process_detail_html(html: str) -> str:
    """Editor HTML -> standalone H5 page body stored on the article."""
    for search, replace in ALIGN_REPLACEMENTS:
        html = html.replace(search, replace)
    return (H5_HEAD + html).replace("<img ", IMG_STYLE)


def build_category_tree(items: list[dict], parent_id: int = 0) -> list[dict]:
    """Nest {id, name, parentId} rows under their parents, starting from `parent_id`."""
    return [
        {**item, "children": build_category_tree(items, item["id"])}
        for item in items
        if item["parentId"] == parent_id and item["id"] != parent_id
    ]


def decode_base64_upload(data: str, ext: str | None = None) -> tuple[bytes, str, str | None]:
    """
    Decode a base64 string or data URL.
    Returns (bytes, extension, content_type). Raises ValueError on bad input.
    """
    content_type = None
    match = _DATA_URL.match(data)
    if match:
        content_type = match.group("mime")
        data = data[match.end():]
        if not ext and content_type and "/" in content_type:
            ext = content_type.split("/", 1)[1].split("+", 1)[0]
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 file data: {e}")
    if not raw:
        raise ValueError("File is empty")
    ext = (ext or "png").lstrip(".").lower()
    return raw, ext, content_type
