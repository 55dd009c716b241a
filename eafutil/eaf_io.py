"""Reads and writes ELAN annotation files (EAF) with ElementTree."""

import logging
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from .exceptions import EafParseError, FileSystemError
from .models import (
    Annotation, Constraint, ControlledVocabulary, CVEntry, EafDocument, Header, Language,
    LinguisticType, LinkedFileDescriptor, Locale, MediaDescriptor, Property, Tier, TimeSlot,
)
from .utils import ensure_writable

logger = logging.getLogger(__name__)

XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = "http://www.mpi.nl/tools/elan/EAFv3.0.xsd"
SCHEMA_LOCATION_ATTR = f"{{{XSI_NS}}}noNamespaceSchemaLocation"

ET.register_namespace("xsi", XSI_NS)

def read_eaf(path: str) -> EafDocument:
    """
    Parses an EAF file.

    Args:
        path: Path to the .eaf file.

    Returns:
        The parsed EafDocument, with `path` set.

    Raises:
        FileNotFoundError: If the file does not exist.
        EafParseError: If the XML is malformed or references are broken.
    """
    logger.debug(f"Reading EAF file: {path}")
    if not os.path.isfile(path):
        raise FileNotFoundError(f"EAF file not found: {path}")
    try:
        tree = ET.parse(path)
    except ET.ParseError as e:
        raise EafParseError(f"Malformed XML in {path}: {e}") from e
    doc = _parse_document(tree.getroot(), path)
    doc.path = path
    logger.info(f"Read {path}: {doc.tier_count()} tiers, {doc.annotation_count()} annotations")
    return doc

def eaf_from_string(text: str, source: str = "<string>") -> EafDocument:
    """Parses EAF XML held in a string."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise EafParseError(f"Malformed XML in {source}: {e}") from e
    return _parse_document(root, source)

def _opt(element: ET.Element, name: str) -> Optional[str]:
    value = element.get(name)
    return value if value else None

def _required(element: ET.Element, name: str, source: str) -> str:
    value = element.get(name)
    if not value:
        raise EafParseError(f"{source}: <{element.tag}> is missing the {name} attribute")
    return value

def _int_attr(element: ET.Element, name: str, source: str) -> Optional[int]:
    value = element.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise EafParseError(f"{source}: <{element.tag}> has a non-integer {name}: '{value}'") from e

def _bool_attr(element: ET.Element, name: str, default: bool) -> bool:
    value = element.get(name)
    if value is None:
        return default
    return value.strip().lower() == "true"

def _parse_document(root: ET.Element, source: str) -> EafDocument:
    if root.tag != "ANNOTATION_DOCUMENT":
        raise EafParseError(f"{source}: root element is <{root.tag}>, expected <ANNOTATION_DOCUMENT>")

    version = root.get("VERSION", "3.0")
    doc = EafDocument(
        author=root.get("AUTHOR", ""),
        date=root.get("DATE", ""),
        version=version,
        eaf_format=root.get("FORMAT", version),
    )
    for child in root:
        tag = child.tag
        if tag == "HEADER":
            doc.header = _parse_header(child)
        elif tag == "TIME_ORDER":
            for slot in child.findall("TIME_SLOT"):
                doc.time_slots.append(TimeSlot(
                    _required(slot, "TIME_SLOT_ID", source),
                    _int_attr(slot, "TIME_VALUE", source),
                ))
        elif tag == "TIER":
            doc.tiers.append(_parse_tier(child, source))
        elif tag == "LINGUISTIC_TYPE":
            doc.linguistic_types.append(LinguisticType(
                linguistic_type_id=_required(child, "LINGUISTIC_TYPE_ID", source),
                time_alignable=_bool_attr(child, "TIME_ALIGNABLE", True),
                constraints=_opt(child, "CONSTRAINTS"),
                graphic_references=_bool_attr(child, "GRAPHIC_REFERENCES", False),
                controlled_vocabulary=_opt(child, "CONTROLLED_VOCABULARY_REF"),
                ext_ref=_opt(child, "EXT_REF"),
                lexicon_ref=_opt(child, "LEXICON_REF"),
            ))
        elif tag == "LOCALE":
            doc.locales.append(Locale(
                _required(child, "LANGUAGE_CODE", source),
                _opt(child, "COUNTRY_CODE"),
                _opt(child, "VARIANT"),
            ))
        elif tag == "LANGUAGE":
            doc.languages.append(Language(
                _required(child, "LANG_ID", source),
                _opt(child, "LANG_DEF"),
                _opt(child, "LANG_LABEL"),
            ))
        elif tag == "CONSTRAINT":
            doc.constraints.append(Constraint(_required(child, "STEREOTYPE", source), _opt(child, "DESCRIPTION")))
        elif tag == "CONTROLLED_VOCABULARY":
            doc.controlled_vocabularies.append(_parse_cv(child, source))
        else:
            doc.extra_elements.append(child)

    _validate(doc, source)
    return doc

def _parse_header(element: ET.Element) -> Header:
    header = Header(
        media_file=element.get("MEDIA_FILE", ""),
        time_units=element.get("TIME_UNITS", "milliseconds"),
    )
    for md in element.findall("MEDIA_DESCRIPTOR"):
        header.media_descriptors.append(MediaDescriptor(
            media_url=md.get("MEDIA_URL", ""),
            mime_type=md.get("MIME_TYPE", "unknown"),
            relative_media_url=_opt(md, "RELATIVE_MEDIA_URL"),
            time_origin=_int_attr(md, "TIME_ORIGIN", "MEDIA_DESCRIPTOR"),
            extracted_from=_opt(md, "EXTRACTED_FROM"),
        ))
    for lf in element.findall("LINKED_FILE_DESCRIPTOR"):
        header.linked_file_descriptors.append(LinkedFileDescriptor(
            link_url=lf.get("LINK_URL", ""),
            mime_type=lf.get("MIME_TYPE", "unknown"),
            relative_link_url=_opt(lf, "RELATIVE_LINK_URL"),
            time_origin=_int_attr(lf, "TIME_ORIGIN", "LINKED_FILE_DESCRIPTOR"),
            associated_with=_opt(lf, "ASSOCIATED_WITH"),
        ))
    for prop in element.findall("PROPERTY"):
        header.properties.append(Property(prop.get("NAME", ""), prop.text or ""))
    return header

def _annotation_value(element: ET.Element) -> str:
    value = element.find("ANNOTATION_VALUE")
    if value is None or value.text is None:
        return ""
    return value.text

def _parse_tier(element: ET.Element, source: str) -> Tier:
    tier = Tier(
        tier_id=_required(element, "TIER_ID", source),
        linguistic_type_ref=element.get("LINGUISTIC_TYPE_REF", "default-lt"),
        parent_ref=_opt(element, "PARENT_REF"),
        participant=_opt(element, "PARTICIPANT"),
        annotator=_opt(element, "ANNOTATOR"),
        default_locale=_opt(element, "DEFAULT_LOCALE"),
        lang_ref=_opt(element, "LANG_REF"),
        ext_ref=_opt(element, "EXT_REF"),
    )
    for wrapper in element.findall("ANNOTATION"):
        alignable = wrapper.find("ALIGNABLE_ANNOTATION")
        ref = wrapper.find("REF_ANNOTATION")
        if alignable is not None:
            tier.annotations.append(Annotation(
                id=_required(alignable, "ANNOTATION_ID", source),
                value=_annotation_value(alignable),
                ts_ref1=_required(alignable, "TIME_SLOT_REF1", source),
                ts_ref2=_required(alignable, "TIME_SLOT_REF2", source),
                ext_ref=_opt(alignable, "EXT_REF"),
                lang_ref=_opt(alignable, "LANG_REF"),
                cve_ref=_opt(alignable, "CVE_REF"),
            ))
        elif ref is not None:
            tier.annotations.append(Annotation(
                id=_required(ref, "ANNOTATION_ID", source),
                value=_annotation_value(ref),
                ref_id=_required(ref, "ANNOTATION_REF", source),
                previous=_opt(ref, "PREVIOUS_ANNOTATION"),
                ext_ref=_opt(ref, "EXT_REF"),
                lang_ref=_opt(ref, "LANG_REF"),
                cve_ref=_opt(ref, "CVE_REF"),
            ))
        else:
            raise EafParseError(f"{source}: empty <ANNOTATION> in tier '{tier.tier_id}'")
    return tier

def _parse_cv(element: ET.Element, source: str) -> ControlledVocabulary:
    cv = ControlledVocabulary(
        cv_id=_required(element, "CV_ID", source),
        description=_opt(element, "DESCRIPTION"),
        ext_ref=_opt(element, "EXT_REF"),
    )
    description = element.find("DESCRIPTION")
    if description is not None:
        cv.description = description.text
        cv.description_lang_ref = _opt(description, "LANG_REF")
    # EAF 2.8+ multilingual entries
    for entry in element.findall("CV_ENTRY_ML"):
        cve_id = _required(entry, "CVE_ID", source)
        for value in entry.findall("CVE_VALUE"):
            cv.entries.append(CVEntry(
                cve_id=cve_id,
                value=value.text or "",
                description=_opt(value, "DESCRIPTION"),
                lang_ref=_opt(value, "LANG_REF"),
                ext_ref=_opt(entry, "EXT_REF"),
            ))
    # Pre 2.8 entries
    for entry in element.findall("CV_ENTRY"):
        cv.entries.append(CVEntry(
            cve_id=None,
            value=entry.text or "",
            description=_opt(entry, "DESCRIPTION"),
            ext_ref=_opt(entry, "EXT_REF"),
        ))
    return cv

def _validate(doc: EafDocument, source: str) -> None:
    """Checks tier, annotation and time slot references."""
    slot_ids = {ts.id for ts in doc.time_slots}
    tier_ids = set()
    for tier in doc.tiers:
        if tier.tier_id in tier_ids:
            raise EafParseError(f"{source}: duplicate tier ID '{tier.tier_id}'")
        tier_ids.add(tier.tier_id)

    annotation_ids = set()
    for tier in doc.tiers:
        if tier.parent_ref is not None and tier.parent_ref not in tier_ids:
            raise EafParseError(f"{source}: tier '{tier.tier_id}' refers to missing parent tier '{tier.parent_ref}'")
        for annotation in tier.annotations:
            if annotation.id in annotation_ids:
                raise EafParseError(f"{source}: duplicate annotation ID '{annotation.id}'")
            annotation_ids.add(annotation.id)
            if annotation.is_alignable:
                for ref in (annotation.ts_ref1, annotation.ts_ref2):
                    if ref not in slot_ids:
                        raise EafParseError(
                            f"{source}: annotation '{annotation.id}' in tier '{tier.tier_id}' refers to missing time slot '{ref}'"
                        )

    for tier in doc.tiers:
        for annotation in tier.annotations:
            if annotation.is_ref and annotation.ref_id not in annotation_ids:
                raise EafParseError(
                    f"{source}: annotation '{annotation.id}' in tier '{tier.tier_id}' refers to missing annotation '{annotation.ref_id}'"
                )

def _set(element: ET.Element, name: str, value) -> None:
    """Sets an attribute, skipping None."""
    if value is None:
        return
    if isinstance(value, bool):
        value = "true" if value else "false"
    element.set(name, str(value))

def _last_used_annotation_id(doc: EafDocument) -> int:
    last = 0
    for annotation in doc.annotations_by_id():
        if annotation.startswith("a") and annotation[1:].isdigit():
            last = max(last, int(annotation[1:]))
    return last

def eaf_to_element(doc: EafDocument) -> ET.Element:
    """Builds the XML tree for `doc`, in schema element order."""
    doc.header.set_property("lastUsedAnnotationId", str(_last_used_annotation_id(doc)))

    root = ET.Element("ANNOTATION_DOCUMENT")
    root.set("AUTHOR", doc.author)
    root.set("DATE", doc.date)
    root.set("FORMAT", doc.eaf_format)
    root.set("VERSION", doc.version)
    root.set(SCHEMA_LOCATION_ATTR, SCHEMA_LOCATION)

    header = ET.SubElement(root, "HEADER")
    header.set("MEDIA_FILE", doc.header.media_file)
    header.set("TIME_UNITS", doc.header.time_units)
    for md in doc.header.media_descriptors:
        el = ET.SubElement(header, "MEDIA_DESCRIPTOR")
        _set(el, "MEDIA_URL", md.media_url)
        _set(el, "MIME_TYPE", md.mime_type)
        _set(el, "RELATIVE_MEDIA_URL", md.relative_media_url)
        _set(el, "TIME_ORIGIN", md.time_origin)
        _set(el, "EXTRACTED_FROM", md.extracted_from)
    for lf in doc.header.linked_file_descriptors:
        el = ET.SubElement(header, "LINKED_FILE_DESCRIPTOR")
        _set(el, "LINK_URL", lf.link_url)
        _set(el, "MIME_TYPE", lf.mime_type)
        _set(el, "RELATIVE_LINK_URL", lf.relative_link_url)
        _set(el, "TIME_ORIGIN", lf.time_origin)
        _set(el, "ASSOCIATED_WITH", lf.associated_with)
    for prop in doc.header.properties:
        el = ET.SubElement(header, "PROPERTY")
        el.set("NAME", prop.name)
        el.text = prop.value

    time_order = ET.SubElement(root, "TIME_ORDER")
    for slot in doc.time_slots:
        el = ET.SubElement(time_order, "TIME_SLOT")
        el.set("TIME_SLOT_ID", slot.id)
        _set(el, "TIME_VALUE", slot.value)

    for tier in doc.tiers:
        tier_el = ET.SubElement(root, "TIER")
        _set(tier_el, "LINGUISTIC_TYPE_REF", tier.linguistic_type_ref)
        _set(tier_el, "PARENT_REF", tier.parent_ref)
        _set(tier_el, "PARTICIPANT", tier.participant)
        _set(tier_el, "ANNOTATOR", tier.annotator)
        _set(tier_el, "DEFAULT_LOCALE", tier.default_locale)
        _set(tier_el, "LANG_REF", tier.lang_ref)
        _set(tier_el, "EXT_REF", tier.ext_ref)
        tier_el.set("TIER_ID", tier.tier_id)
        for annotation in tier.annotations:
            wrapper = ET.SubElement(tier_el, "ANNOTATION")
            if annotation.is_alignable:
                el = ET.SubElement(wrapper, "ALIGNABLE_ANNOTATION")
                el.set("ANNOTATION_ID", annotation.id)
                _set(el, "EXT_REF", annotation.ext_ref)
                _set(el, "LANG_REF", annotation.lang_ref)
                _set(el, "CVE_REF", annotation.cve_ref)
                el.set("TIME_SLOT_REF1", annotation.ts_ref1)
                el.set("TIME_SLOT_REF2", annotation.ts_ref2)
            else:
                el = ET.SubElement(wrapper, "REF_ANNOTATION")
                el.set("ANNOTATION_ID", annotation.id)
                _set(el, "EXT_REF", annotation.ext_ref)
                _set(el, "LANG_REF", annotation.lang_ref)
                _set(el, "CVE_REF", annotation.cve_ref)
                el.set("ANNOTATION_REF", annotation.ref_id)
                _set(el, "PREVIOUS_ANNOTATION", annotation.previous)
            ET.SubElement(el, "ANNOTATION_VALUE").text = annotation.value

    for lt in doc.linguistic_types:
        el = ET.SubElement(root, "LINGUISTIC_TYPE")
        _set(el, "CONSTRAINTS", lt.constraints)
        _set(el, "CONTROLLED_VOCABULARY_REF", lt.controlled_vocabulary)
        _set(el, "EXT_REF", lt.ext_ref)
        el.set("GRAPHIC_REFERENCES", "true" if lt.graphic_references else "false")
        _set(el, "LEXICON_REF", lt.lexicon_ref)
        el.set("LINGUISTIC_TYPE_ID", lt.linguistic_type_id)
        el.set("TIME_ALIGNABLE", "true" if lt.time_alignable else "false")

    for locale in doc.locales:
        el = ET.SubElement(root, "LOCALE")
        _set(el, "COUNTRY_CODE", locale.country_code)
        el.set("LANGUAGE_CODE", locale.language_code)
        _set(el, "VARIANT", locale.variant)

    for language in doc.languages:
        el = ET.SubElement(root, "LANGUAGE")
        _set(el, "LANG_DEF", language.lang_def)
        el.set("LANG_ID", language.lang_id)
        _set(el, "LANG_LABEL", language.lang_label)

    for constraint in doc.constraints:
        el = ET.SubElement(root, "CONSTRAINT")
        _set(el, "DESCRIPTION", constraint.description)
        el.set("STEREOTYPE", constraint.stereotype)

    for cv in doc.controlled_vocabularies:
        root.append(_cv_to_element(cv))

    for extra in doc.extra_elements:
        root.append(extra)

    return root

def _cv_to_element(cv: ControlledVocabulary) -> ET.Element:
    el = ET.Element("CONTROLLED_VOCABULARY")
    el.set("CV_ID", cv.cv_id)
    _set(el, "EXT_REF", cv.ext_ref)
    multilingual = any(entry.cve_id is not None for entry in cv.entries)
    if not multilingual:
        _set(el, "DESCRIPTION", cv.description)
        for entry in cv.entries:
            entry_el = ET.SubElement(el, "CV_ENTRY")
            _set(entry_el, "DESCRIPTION", entry.description)
            _set(entry_el, "EXT_REF", entry.ext_ref)
            entry_el.text = entry.value
        return el

    if cv.description is not None or cv.description_lang_ref is not None:
        description = ET.SubElement(el, "DESCRIPTION")
        _set(description, "LANG_REF", cv.description_lang_ref)
        description.text = cv.description
    grouped: Dict[str, List[CVEntry]] = {}
    for entry in cv.entries:
        grouped.setdefault(entry.cve_id or "", []).append(entry)
    for cve_id, entries in grouped.items():
        entry_el = ET.SubElement(el, "CV_ENTRY_ML")
        entry_el.set("CVE_ID", cve_id)
        _set(entry_el, "EXT_REF", entries[0].ext_ref)
        for entry in entries:
            value_el = ET.SubElement(entry_el, "CVE_VALUE")
            _set(value_el, "DESCRIPTION", entry.description)
            _set(value_el, "LANG_REF", entry.lang_ref)
            value_el.text = entry.value
    return el

def eaf_to_string(doc: EafDocument) -> str:
    """Serializes `doc` as indented EAF XML with an XML declaration."""
    root = eaf_to_element(doc)
    ET.indent(root, space="    ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"

def write_eaf(doc: EafDocument, path: str, overwrite: bool = False) -> str:
    """
    Writes `doc` to `path`.

    Args:
        doc: The document to write.
        path: Output file path.
        overwrite: Replace an existing file.

    Returns:
        The path written.

    Raises:
        FileSystemError: If the file exists and `overwrite` is False,
                         or if it cannot be written.
    """
    ensure_writable(path, overwrite)
    content = eaf_to_string(doc)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        logger.error(f"Could not write EAF file {path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not write {path}: {e}") from e
    logger.info(f"Wrote {path}")
    return path
