"""
Interactive questions for the cloner. Kept free of engine logic: every
answer is handed to the engine as a plain value or callable.
"""

from typing import List

from clone.conflicts import Decision

SELECT_ALL = '[Select All]'


def get_user_input(prompt, default=''):
    """Ask until a non-empty answer (or a default) is given."""
    while True:
        suffix = f" [{default}]" if default else ''
        value = input(f"{prompt}{suffix}: ").strip()
        if value:
            return value
        if default:
            return default
        print("Please provide a value.")


def prompt_mongo_uri(default=''):
    return get_user_input("Source MongoDB URI", default)


def prompt_destination_mongo_uri(default=''):
    return get_user_input("Destination MongoDB URI", default)


def _parse_selection(answer: str, choices: List[str]) -> List[str]:
    picked = []
    for token in answer.replace(',', ' ').split():
        if not token.isdigit():
            raise ValueError(f"Not a number: {token}")
        index = int(token)
        if not 0 <= index < len(choices):
            raise ValueError(f"Out of range: {token}")
        picked.append(choices[index])
    return picked


def prompt_multi_select(message: str, names: List[str], allow_all=True) -> List[str]:
    choices = ([SELECT_ALL] if allow_all else []) + list(names)
    print(message)
    for index, name in enumerate(choices):
        print(f"  {index}) {name}")
    while True:
        answer = input("Enter numbers separated by spaces: ").strip()
        if not answer:
            return []
        try:
            picked = _parse_selection(answer, choices)
        except ValueError as e:
            print(f"Invalid selection ({e}).")
            continue
        if SELECT_ALL in picked:
            return list(names)
        # Keep the order the names were offered in
        return [name for name in names if name in picked]


def prompt_database_selection(names: List[str]) -> List[str]:
    return prompt_multi_select("Select databases to clone:", names)


def prompt_collection_selection(names: List[str]) -> List[str]:
    return prompt_multi_select("Select collections to migrate:", names)


def prompt_single_database(names: List[str]) -> str:
    print("Select a database:")
    for index, name in enumerate(names):
        print(f"  {index}) {name}")
    while True:
        answer = input("Enter a number: ").strip()
        if answer.isdigit() and int(answer) < len(names):
            return names[int(answer)]
        print("Invalid selection.")


def prompt_conflict_decision(db_name: str) -> Decision:
    """Overwrite, skip or cancel for one database that already exists."""
    options = {'o': Decision.OVERWRITE, 's': Decision.SKIP, 'c': Decision.ABORT}
    while True:
        answer = input(
            f"Destination already contains \"{db_name}\". "
            f"(o)verwrite destination copy, (s)kip this database, (c)ancel entire clone run: "
        ).strip().lower()
        if answer[:1] in options:
            return options[answer[:1]]


def prompt_to_be_sure(message="Ready to start cloning? (Y/N)") -> bool:
    while True:
        decision = input(f"{message} ").strip().upper()
        if decision in ('Y', 'N'):
            return decision == 'Y'
