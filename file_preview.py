import io
import ipaddress
import logging
import mimetypes
import os
import socket
from urllib.parse import urlparse

import requests
from docx import Document
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

REMOTE_TIMEOUT = 10
CHUNK_SIZE = 64 * 1024


class PreviewError(Exception):
    pass


def file_extension(filename):
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def allowed_file(filename, allowed_extensions):
    return file_extension(filename) in allowed_extensions


def clean_filename(filename):
    name = secure_filename(filename or '')
    return name or 'document'


def content_type_for(filename):
    ext = file_extension(filename)
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]
    return mimetypes.guess_type(filename)[0] or 'application/octet-stream'


def docx_text(data):
    """Paragraph and table text of a .docx file, in document order"""
    try:
        doc = Document(io.BytesIO(data))
    except Exception as e:
        raise PreviewError(f"Could not read Word document: {e}")

    paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                paragraphs.append(" | ".join(cells))
    return paragraphs


def _check_public_host(url):
    """Refuse links whose host resolves to a loopback, private or link-local address"""
    host = urlparse(url).hostname
    if not host:
        raise PreviewError("File link has no host")
    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError):
        raise PreviewError(f"Cannot resolve host {host}")

    for info in infos:
        address = ipaddress.ip_address(info[4][0].split('%', 1)[0])
        if (address.is_private or address.is_loopback or address.is_link_local
                or address.is_reserved or address.is_multicast or address.is_unspecified):
            logger.warning("Refused to fetch %s: %s is not a public address", url, address)
            raise PreviewError("File links must point to a public host")


def fetch_remote_file(url, max_bytes):
    """Download an externally hosted attachment of at most ``max_bytes``.

    Returns (bytes, filename, content_type). Redirects are not followed.
    """
    if not url.lower().startswith(("http://", "https://")):
        raise PreviewError("Only http(s) file links can be previewed")
    _check_public_host(url)

    try:
        with requests.get(url, timeout=REMOTE_TIMEOUT, stream=True, allow_redirects=False) as response:
            if response.is_redirect:
                raise PreviewError("File links that redirect cannot be previewed")
            response.raise_for_status()

            content = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                content.extend(chunk)
                if len(content) > max_bytes:
                    raise PreviewError("Linked file is too large to preview")
            content_type = response.headers.get('Content-Type', '').split(';')[0].strip()
    except requests.RequestException as e:
        logger.warning("Failed to fetch %s: %s", url, e)
        raise PreviewError(f"Failed to fetch file: {e}")

    filename = os.path.basename(url.split('?', 1)[0]) or 'document'
    if not content_type or content_type == 'application/octet-stream':
        content_type = content_type_for(filename)
    return bytes(content), filename, content_type


def build_preview(data, filename, content_type):
    """Describe how a client should render a file.

    PDFs are returned as-is (kind ``pdf``); Word documents are converted to
    text (kind ``text``); anything else is download only.
    """
    ext = file_extension(filename)
    if content_type == CONTENT_TYPES["pdf"] or ext == "pdf":
        return {"kind": "pdf", "filename": filename}
    if content_type == CONTENT_TYPES["docx"] or ext == "docx":
        return {"kind": "text", "filename": filename, "paragraphs": docx_text(data)}
    return {"kind": "download", "filename": filename, "contentType": content_type}
