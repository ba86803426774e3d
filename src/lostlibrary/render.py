from __future__ import annotations

import html
import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag

from .config import READ_WORDS_PER_MINUTE
from .datamodels import Article

logger = logging.getLogger("lostlibrary")

BLANK_LINES = re.compile(r"\n{3,}")


def article_to_markdown(article: Article) -> str:
    parts = [f"# {article.title}\n\n"]
    byline = [article.author_name]
    if article.published_date:
        byline.append(article.published_date)
    byline.append(article.category_label)
    parts.append(f"*{' · '.join(byline)}*\n\n")
    parts.append(html_to_markdown(article.content or article.excerpt or ""))
    return "".join(parts).strip()


def html_to_markdown(content: str) -> str:
    """Convert stored article HTML to markdown. Plain text passes through."""
    if not content:
        return ""
    if "<" not in content:
        return html.unescape(content).strip()
    soup = BeautifulSoup(content, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    root = soup.body or soup
    text = "".join(_node_to_markdown(child) for child in root.children)
    return BLANK_LINES.sub("\n\n", html.unescape(text)).strip()


def _node_to_markdown(node) -> str:
    if isinstance(node, NavigableString):
        return str(node)
    if not isinstance(node, Tag):
        return ""
    tag = node.name
    child_content = "".join(_node_to_markdown(c) for c in node.children)
    if tag == "a":
        return f"[{child_content}]({node.get('href', '')})"
    if tag == "img":
        alt = node.get("alt", "image")
        return f"![{alt}]({node.get('src', '')})\n\n"
    if tag == "blockquote":
        return "".join(f"> {line}\n" for line in child_content.strip().split("\n")) + "\n"
    if tag == "ol":
        items = [c for c in node.children if isinstance(c, Tag) and c.name == "li"]
        return "".join(
            f"{i}. {''.join(_node_to_markdown(c) for c in li.children).strip()}\n"
            for i, li in enumerate(items, 1)
        ) + "\n"
    tag_map = {
        "p": f"{child_content.strip()}\n\n",
        "h1": f"## {child_content.strip()}\n\n",
        "h2": f"## {child_content.strip()}\n\n",
        "h3": f"### {child_content.strip()}\n\n",
        "h4": f"#### {child_content.strip()}\n\n",
        "ul": f"{child_content}\n",
        "li": f"- {child_content.strip()}\n",
        "br": "\n",
        "hr": "\n---\n\n",
        "strong": f"**{child_content}**",
        "b": f"**{child_content}**",
        "em": f"*{child_content}*",
        "i": f"*{child_content}*",
        "code": f"`{child_content}`",
    }
    return tag_map.get(tag, child_content)


def minutes_to_read(text: str) -> int:
    return max(1, round(len(text.split()) / READ_WORDS_PER_MINUTE))
