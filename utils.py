from ebooklib import epub
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, PageBreak, Image as RLImage
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from PIL import Image, UnidentifiedImageError
import os
import re
import time
import uuid
import requests
import logging
from datetime import datetime
from io import BytesIO
from typing import List, Optional, Tuple

from config import NOVEL_OUTPUT_FORMAT, OUTPUT_DIR
from models import Chapter

logger = logging.getLogger(__name__)

# HTTP headers for cover downloads
HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
}

SUPPORTED_FORMATS = ('epub', 'pdf')

EPUB_COVER_SIZE = (800, 1200)
PDF_COVER_SIZE = (600, 900)

DEFAULT_STYLE = '''
* { text-indent: 0 !important; }
body {
    font-family: Georgia, "Times New Roman", serif;
    font-size: 12pt;
    line-height: 1.8;
    margin: 20px;
    padding: 0;
}
h1 { font-size: 24pt; margin-top: 40pt; margin-bottom: 20pt; text-align: center; }
h2 { font-size: 16pt; margin-top: 20pt; margin-bottom: 12pt; }
p { margin: 0 0 12pt 0; padding: 0; text-align: justify; }
.title-page { padding: 40pt; text-align: center; }
.title-page .category { font-size: 12pt; color: #888; }
.dialogue { margin: 0 0 12pt 0; padding-left: 0; }
.scene-break { text-align: center; margin: 24pt 0; letter-spacing: 8px; color: #888; }
.system-box {
    font-family: Consolas, Monaco, "Courier New", monospace;
    font-size: 11pt;
    text-align: center;
    background-color: #f0f0f0;
    border: 1px solid #ccc;
    border-radius: 4px;
    padding: 12px 20px;
    margin: 16px auto;
    max-width: 90%;
}
'''


def clean_filename(title):
    """Clean filename, remove special characters"""
    clean = re.sub(r'[\\/*?:"<>|]', "", title or 'novel').strip()
    clean = clean.replace(' ', '_')[:100]  # Limit length
    return clean or 'novel'


def escape_html(text: str) -> str:
    return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')


def paragraph_kind(para: str) -> str:
    """Classify a paragraph: scene_break, system, dialogue or text"""
    if para.startswith('---') or para in ('***', '* * *'):
        return 'scene_break'
    if re.match(r'^\[[A-Z][A-Za-z\s]+:', para) or re.match(r'^\[.+?\]$', para):
        return 'system'
    if para[:1] in ('"', "'", '“', '‘'):
        return 'dialogue'
    return 'text'


def iter_paragraphs(content: str):
    for para in (content or '').split('\n'):
        para = ' '.join(para.replace('\xa0', ' ').split())
        if para:
            yield para


def prepare_cover(image_data: Optional[bytes], max_size: Tuple[int, int] = EPUB_COVER_SIZE,
                  quality: int = 75) -> Optional[bytes]:
    """Downloaded cover as a white-backed JPEG no larger than max_size; None if unreadable"""
    if not image_data:
        return None
    try:
        img = Image.open(BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Cover is not a readable image, skipping it: {e}")
        return None

    # JPEG has no alpha channel
    rgba = img.convert('RGBA')
    cover = Image.new('RGB', rgba.size, (255, 255, 255))
    cover.paste(rgba, mask=rgba.getchannel('A'))
    cover.thumbnail(max_size, Image.Resampling.LANCZOS)

    output = BytesIO()
    cover.save(output, format='JPEG', quality=quality, optimize=True)
    logger.debug(f"Cover {img.size} -> {cover.size}, {len(image_data)} -> {output.tell()} bytes")
    return output.getvalue()


def fetch_cover_image(cover_url: Optional[str]) -> Optional[bytes]:
    """Download a cover image; None if there is none or the download fails"""
    if not cover_url:
        return None
    try:
        resp = requests.get(cover_url, headers=HEADERS, timeout=10)
        if resp.status_code == 200 and resp.content and \
                resp.headers.get('Content-Type', 'image/').startswith('image/'):
            return resp.content
        logger.info(f"Cover download returned HTTP {resp.status_code} for {cover_url}")
    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to download cover {cover_url}: {e}")
    return None


def _output_path(output_dir: str, title: str, count: int, ext: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    # Short random suffix keeps concurrent builds of the same novel apart
    name = f"{clean_filename(title)}_1-{count}_{uuid.uuid4().hex[:6]}.{ext}"
    return os.path.join(output_dir, name)


def create_epub(title: str, category: str, chapters: List[Chapter],
                output_dir: str = OUTPUT_DIR, cover_data: Optional[bytes] = None) -> str:
    """Create an EPUB with a cover page, a title page and the chapters in order"""
    book = epub.EpubBook()
    book.set_identifier(f'epub_{clean_filename(title)}_{uuid.uuid4().hex}')
    book.set_title(title)
    book.set_language('en')
    book.add_author('Web Novel')
    book.add_metadata('DC', 'subject', category)
    book.add_metadata('DC', 'date', datetime.now().strftime('%Y-%m-%d'))
    book.add_metadata(None, 'meta', '', {'name': 'chapter-count', 'content': str(len(chapters))})

    css_item = epub.EpubItem(
        uid="style_default",
        file_name="styles/main.css",
        media_type="text/css",
        content=DEFAULT_STYLE.encode('utf-8')
    )
    book.add_item(css_item)

    # ===== COVER PAGE =====
    cover_page = epub.EpubHtml(title='Cover', file_name='cover.xhtml', lang='en')
    cover_html = '<html><head><meta charset="utf-8"/></head><body><div style="text-align:center;">'
    cover_data = prepare_cover(cover_data, EPUB_COVER_SIZE)
    if cover_data:
        cover_image = epub.EpubImage()
        cover_image.file_name = 'images/cover.jpg'
        cover_image.media_type = 'image/jpeg'
        cover_image.content = cover_data
        book.add_item(cover_image)
        cover_html += '<img src="images/cover.jpg" alt="Cover" style="max-width:100%;"/>'
    else:
        cover_html += (f'<div style="margin-top:40%; font-size: 2em; font-weight: bold;">'
                       f'{escape_html(title)}</div>')
    cover_html += '</div></body></html>'
    cover_page.content = cover_html
    book.add_item(cover_page)

    # ===== TITLE PAGE =====
    title_page = epub.EpubHtml(title='Title Page', file_name='title.xhtml', lang='en')
    title_page.add_item(css_item)
    title_page.content = (
        '<html><head><meta charset="utf-8"/>'
        '<link rel="stylesheet" type="text/css" href="styles/main.css"/></head>'
        f'<body><div class="title-page"><h1>{escape_html(title)}</h1>'
        f'<p class="category">{escape_html(category)}</p>'
        f'<p class="category">{len(chapters)} chapters</p></div></body></html>')
    book.add_item(title_page)

    # ===== CHAPTERS (order as given) =====
    epub_chapters = []
    for index, chap in enumerate(chapters, 1):
        display_title = chap.title or f'Chapter {index}'
        c = epub.EpubHtml(title=display_title,
                          file_name=f'chap_{index:05d}.xhtml',
                          lang='en')
        c.add_item(css_item)

        chapter_html = ('<html><head><meta charset="utf-8"/>'
                        '<link rel="stylesheet" type="text/css" href="styles/main.css"/></head><body>')
        chapter_html += f'<h2>{escape_html(display_title)}</h2>'
        for para in iter_paragraphs(chap.content):
            kind = paragraph_kind(para)
            if kind == 'scene_break':
                chapter_html += '<p class="scene-break">• • •</p>'
            elif kind == 'system':
                chapter_html += f'<div class="system-box">{escape_html(para)}</div>'
            elif kind == 'dialogue':
                chapter_html += f'<p class="dialogue">{escape_html(para)}</p>'
            else:
                chapter_html += f'<p>{escape_html(para)}</p>'
        chapter_html += '</body></html>'

        c.content = chapter_html
        book.add_item(c)
        epub_chapters.append(c)

    book.toc = [cover_page, title_page] + epub_chapters
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = [cover_page, title_page] + epub_chapters

    filename = _output_path(output_dir, title, len(chapters), 'epub')
    epub.write_epub(filename, book, {})
    return filename


def create_pdf(title: str, category: str, chapters: List[Chapter],
               output_dir: str = OUTPUT_DIR, cover_data: Optional[bytes] = None) -> str:
    """Create a PDF with the same page layout as the EPUB"""
    pdf_start = time.time()
    filename = _output_path(output_dir, title, len(chapters), 'pdf')

    doc = SimpleDocTemplate(filename,
                            pagesize=letter,
                            rightMargin=0.75 * inch,
                            leftMargin=0.75 * inch,
                            topMargin=0.75 * inch,
                            bottomMargin=0.75 * inch,
                            title=title)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle('NovelTitle',
                                 parent=styles['Heading1'],
                                 fontSize=28,
                                 spaceAfter=20,
                                 spaceBefore=80,
                                 alignment=TA_CENTER,
                                 fontName='Helvetica-Bold')
    category_style = ParagraphStyle('Category',
                                    parent=styles['BodyText'],
                                    fontSize=12,
                                    alignment=TA_CENTER,
                                    textColor='#888888')
    chapter_title_style = ParagraphStyle('ChapterTitle',
                                         parent=styles['Heading2'],
                                         fontSize=18,
                                         spaceAfter=30,
                                         spaceBefore=40,
                                         fontName='Helvetica-Bold',
                                         alignment=TA_CENTER)
    body_style = ParagraphStyle('CustomBody',
                                parent=styles['BodyText'],
                                fontSize=11,
                                fontName='Times-Roman',
                                alignment=TA_LEFT,
                                spaceAfter=12,
                                leading=18,
                                firstLineIndent=0)
    dialogue_style = ParagraphStyle('Dialogue',
                                    parent=body_style,
                                    leftIndent=0,
                                    spaceAfter=8)
    system_style = ParagraphStyle('SystemText',
                                  parent=body_style,
                                  fontSize=10,
                                  fontName='Courier',
                                  alignment=TA_CENTER,
                                  backColor='#f5f5f5',
                                  borderPadding=8,
                                  leftIndent=20,
                                  rightIndent=20)
    scene_break_style = ParagraphStyle('SceneBreak',
                                       parent=styles['BodyText'],
                                       fontSize=14,
                                       alignment=TA_CENTER,
                                       spaceBefore=20,
                                       spaceAfter=20)

    story = []

    # ===== COVER =====
    cover_data = prepare_cover(cover_data, PDF_COVER_SIZE, quality=70)
    if cover_data:
        try:
            cover_img = RLImage(BytesIO(cover_data))
            scale = min(1.0, (5 * inch) / cover_img.drawWidth, (7 * inch) / cover_img.drawHeight)
            cover_img.drawWidth *= scale
            cover_img.drawHeight *= scale
            cover_img.hAlign = 'CENTER'
            story.append(Spacer(1, 50))
            story.append(cover_img)
            story.append(PageBreak())
        except Exception as e:
            logger.warning(f"Failed to add cover to PDF: {e}")

    # ===== TITLE PAGE =====
    story.append(Spacer(1, 100))
    story.append(Paragraph(escape_html(title), title_style))
    story.append(Paragraph(escape_html(category), category_style))
    story.append(Paragraph(f"{len(chapters)} chapters", category_style))
    story.append(PageBreak())

    # ===== CHAPTERS =====
    for index, chap in enumerate(chapters, 1):
        story.append(Paragraph(escape_html(chap.title or f'Chapter {index}'), chapter_title_style))
        for para in iter_paragraphs(chap.content):
            kind = paragraph_kind(para)
            if kind == 'scene_break':
                story.append(Paragraph("• • •", scene_break_style))
            elif kind == 'system':
                story.append(Paragraph(escape_html(para), system_style))
            elif kind == 'dialogue':
                story.append(Paragraph(escape_html(para), dialogue_style))
            else:
                story.append(Paragraph(escape_html(para), body_style))
        story.append(PageBreak())

    doc.build(story)
    logger.info(f"PDF created in {time.time() - pdf_start:.2f}s: {filename}")
    return filename


class BookAssembler:
    """Document Assembler: ordered chapters in, path to one packaged file out"""

    def __init__(self, output_dir: str = OUTPUT_DIR, fmt: str = NOVEL_OUTPUT_FORMAT):
        if fmt not in SUPPORTED_FORMATS:
            logger.warning(f"Unknown output format '{fmt}', using epub")
            fmt = 'epub'
        self.output_dir = output_dir
        self.fmt = fmt

    def __call__(self, title: str, category: str, chapters: List[Chapter],
                 cover_image: Optional[str] = None) -> str:
        cover_data = fetch_cover_image(cover_image)
        builder = create_pdf if self.fmt == 'pdf' else create_epub
        path = builder(title, category, chapters, output_dir=self.output_dir, cover_data=cover_data)
        logger.info(f"Built {self.fmt.upper()} with {len(chapters)} chapters: {path}")
        return path
