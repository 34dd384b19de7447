"""
Import quiz questions from a .docx document.

The document is a list of blocks, each introduced by a ``[QUESTION]`` line::

    [QUESTION]
    Type: mcq
    Question: What is the capital of Indonesia?
    Options:
    - [x] Jakarta
    - [ ] Bandung

Options may also be written ``- (correct) Jakarta`` / ``- (wrong) Bandung``.
Indonesian labels (``[PERTANYAAN]``, ``Tipe``,
``Pertanyaan``/``Soal``, ``Opsi``/``Pilihan``, ``benar``/``salah``) are
accepted as well.
"""

import io
import re
import zipfile
import xml.etree.ElementTree as ET
from typing import List, Tuple

from assignment_engine.errors import DocumentImportError, ValidationFailure
from assignment_engine.questions import Question, QuestionKind
from assignment_engine.services.assignment_service import build_question

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
W_NAMESPACE = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

QUESTION_MARKERS = {"[QUESTION]", "[PERTANYAAN]"}
TYPE_LABELS = ("type:", "tipe:")
PROMPT_LABELS = ("question:", "pertanyaan:", "soal:")
OPTIONS_LABELS = ("options:", "opsi:", "pilihan:")
TEXT_TYPE_VALUES = {"text", "essay", "short answer", "jawaban singkat"}
CORRECT_WORDS = {"correct", "benar"}

CHECKBOX_OPTION = re.compile(r"^[-*]\s*\[\s*([xX*])?\s*\]\s*(.+)$")
LITERAL_OPTION = re.compile(r"^[-*]\s*\(\s*(correct|wrong|benar|salah)\s*\)\s*(.+)$", re.IGNORECASE)

TEMPLATE_LINES = [
    "Assignment & quiz import template",
    "Start every question with a line containing [QUESTION].",
    "Use 'mcq' for multiple choice or 'text' for a written answer on the Type line.",
    "Mark correct options with [x] and leave the brackets empty for wrong ones.",
    "",
    "[QUESTION]",
    "Type: mcq",
    "Question: What is the capital of Indonesia?",
    "Options:",
    "- [x] Jakarta",
    "- [ ] Bandung",
    "- [ ] Surabaya",
    "",
    "[QUESTION]",
    "Type: text",
    "Question: Describe the most memorable thing you learned.",
]


def parse_document(data: bytes) -> List[Question]:
    """Parse a .docx document into questions.

    Raises:
        DocumentImportError: if the file is not a usable document or any
            question block is incomplete. No partial list is ever returned.
    """
    paragraphs = extract_paragraphs(data)
    blocks = group_question_blocks(paragraphs)
    if not blocks:
        raise DocumentImportError("No [QUESTION] block found in the document.")
    return [_parse_block(block, number) for number, block in enumerate(blocks, start=1)]


def extract_paragraphs(data: bytes) -> List[str]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as docx_zip:
            if "word/document.xml" not in docx_zip.namelist():
                raise DocumentImportError("Invalid DOCX file. Please use the provided template.")
            with docx_zip.open("word/document.xml") as doc_file:
                root = ET.parse(doc_file).getroot()
    except zipfile.BadZipFile:
        raise DocumentImportError("Invalid DOCX file. Please use the provided template.")
    except ET.ParseError as e:
        raise DocumentImportError(f"Could not read the document body: {e}")

    paragraphs = []
    for paragraph in root.iter(f"{{{W_NAMESPACE}}}p"):
        text = "".join(node.text or "" for node in paragraph.iter(f"{{{W_NAMESPACE}}}t"))
        paragraphs.append(text.replace("\u00a0", " ").replace("\r", "").replace("\n", "").rstrip())
    return paragraphs


def group_question_blocks(lines: List[str]) -> List[List[str]]:
    """Split lines into blocks at question markers; text before the first marker is ignored."""
    blocks: List[List[str]] = []
    current = None
    for raw in lines:
        line = raw.replace("\u00a0", " ").strip()
        if not line:
            continue
        if line.upper() in QUESTION_MARKERS:
            if current:
                blocks.append(current)
            current = []
            continue
        if current is not None:
            current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _parse_block(block: List[str], number: int) -> Question:
    kind = QuestionKind.MCQ
    prompt = ""
    options: List[Tuple[str, bool]] = []
    reading_options = False

    for line in block:
        lower = line.lower()
        if lower.startswith(TYPE_LABELS):
            value = _label_value(line).lower()
            kind = QuestionKind.FREE_TEXT if value in TEXT_TYPE_VALUES else QuestionKind.MCQ
            continue
        if lower.startswith(PROMPT_LABELS):
            prompt = _label_value(line)
            continue
        if lower.startswith(OPTIONS_LABELS):
            reading_options = True
            continue
        if reading_options:
            options.append(_parse_option(line))

    if not prompt:
        raise DocumentImportError(f"Question {number} has no text on its 'Question:' line.")

    if kind is QuestionKind.FREE_TEXT:
        return _build(number, prompt, kind)

    if len(options) < 2:
        raise DocumentImportError(f"Question {number} needs at least 2 options.")
    correct = [idx for idx, (_, is_correct) in enumerate(options) if is_correct]
    if not correct:
        raise DocumentImportError(f"Question {number} has no correct option marked (use [x]).")
    return _build(number, prompt, kind, [text for text, _ in options], correct)


def _parse_option(line: str) -> Tuple[str, bool]:
    match = CHECKBOX_OPTION.match(line)
    if match:
        marker, text = match.groups()
        return text.strip(), bool(marker)
    match = LITERAL_OPTION.match(line)
    if match:
        state, text = match.groups()
        return text.strip(), state.lower() in CORRECT_WORDS
    return line.strip(), False


def _build(number, prompt, kind, options=None, correct=None) -> Question:
    try:
        return build_question(prompt, kind.value, options, correct)
    except ValidationFailure as e:
        raise DocumentImportError(f"Question {number}: {e.message}")


def _label_value(line: str) -> str:
    return line.split(":", 1)[1].strip()


def build_template() -> bytes:
    """Return a minimal .docx holding the import template."""
    return build_docx(TEMPLATE_LINES)


def build_docx(lines: List[str]) -> bytes:
    """Write ``lines`` as paragraphs of a minimal WordprocessingML package."""
    content_types = (
        "<?xml version='1.0' encoding='UTF-8'?>"
        "<Types xmlns='http://schemas.openxmlformats.org/package/2006/content-types'>"
        "<Default Extension='rels' ContentType='application/vnd.openxmlformats-package.relationships+xml'/>"
        "<Default Extension='xml' ContentType='application/xml'/>"
        "<Override PartName='/word/document.xml' "
        "ContentType='application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml'/>"
        "</Types>"
    )
    rels = (
        "<?xml version='1.0' encoding='UTF-8'?>"
        "<Relationships xmlns='http://schemas.openxmlformats.org/package/2006/relationships'>"
        "<Relationship Id='rId1' "
        "Type='http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument' "
        "Target='word/document.xml'/>"
        "</Relationships>"
    )

    ET.register_namespace("w", W_NAMESPACE)
    document = ET.Element(f"{{{W_NAMESPACE}}}document")
    body = ET.SubElement(document, f"{{{W_NAMESPACE}}}body")
    for line in lines:
        paragraph = ET.SubElement(body, f"{{{W_NAMESPACE}}}p")
        run = ET.SubElement(paragraph, f"{{{W_NAMESPACE}}}r")
        text = ET.SubElement(run, f"{{{W_NAMESPACE}}}t")
        text.text = line
    document_xml = ET.tostring(document, encoding="utf-8", xml_declaration=True)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as docx_zip:
        docx_zip.writestr("[Content_Types].xml", content_types)
        docx_zip.writestr("_rels/.rels", rels)
        docx_zip.writestr("word/document.xml", document_xml)
    return buffer.getvalue()
