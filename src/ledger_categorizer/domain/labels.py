def parse_label_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    labels: list[str] = []
    seen = set()
    for part in raw.split(","):
        label = part.strip()
        if label and label not in seen:
            labels.append(label)
            seen.add(label)
    return labels


def parse_id_list(raw: str | None) -> list[int]:
    ids: list[int] = []
    for part in parse_label_list(raw):
        try:
            ids.append(int(part))
        except ValueError:
            raise ValueError(f"'{part}' is not an integer id") from None
    return ids


def merge_labels(existing: list[str] | None, new_labels: list[str]) -> list[str]:
    merged: list[str] = []
    seen = set()
    for label in [*(existing or []), *new_labels]:
        if label and label not in seen:
            merged.append(label)
            seen.add(label)
    return merged
