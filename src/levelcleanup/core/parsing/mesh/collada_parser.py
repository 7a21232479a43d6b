import xml.etree.ElementTree as ET
from typing import List, Tuple


def parse_collada_materials(xml_text: str) -> Tuple[List[str], str]:
    """
    Material names used by a Collada mesh. The game matches the first word of
    the ``name`` attribute (exporters append suffixes after a space); ``id`` is
    used when there is no name.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        return [], f"xml_parse_error:{e}"

    names: List[str] = []
    for mat in root.iter():
        if not isinstance(mat.tag, str) or mat.tag.rsplit("}", 1)[-1] != "material":
            continue
        raw = mat.attrib.get("name") or mat.attrib.get("id") or ""
        parts = raw.split(" ")
        name = parts[0] if parts else ""
        if name and name not in names:
            names.append(name)
    return names, ""
