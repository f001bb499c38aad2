"""Task-name reconciliation events.

Task names are not entities: a "task" is the group of entries sharing an
exactly equal task_name string. "Bug fix" and "bug fix" are two groups.
"""
from typing import Dict, Any, List


class TaskNames:
    @staticmethod
    def merged(source_task_names: List[str], target_task_name: str,
               target_category_id: int | None, entries_updated: int) -> Dict[str, Any]:
        return {
            "source_task_names": list(source_task_names),
            "target_task_name": target_task_name,
            "target_category_id": target_category_id,
            "entries_updated": entries_updated,
        }

    @staticmethod
    def bulk_updated(old_task_name: str, old_category_id: int,
                     new_task_name: str, new_category_id: int,
                     entries_updated: int) -> Dict[str, Any]:
        return {
            "old_task_name": old_task_name,
            "old_category_id": old_category_id,
            "new_task_name": new_task_name,
            "new_category_id": new_category_id,
            "entries_updated": entries_updated,
        }


def dedupe_names(names: List[str]) -> List[str]:
    """
    Trim like stored names are trimmed, then drop blanks and exact
    duplicates, keeping first-seen order. No case folding.
    """
    trimmed = (n.strip() for n in names if isinstance(n, str))
    return list(dict.fromkeys(n for n in trimmed if n))
