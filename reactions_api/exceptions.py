class ReactionsAPIError(Exception):
    eng: str
    ru: str

    def __init__(self, eng: str, ru: str) -> None:
        self.eng = eng
        self.ru = ru
        super().__init__(eng)


class ObjectNotFound(ReactionsAPIError):
    def __init__(self, obj: type | str, obj_id_or_name: int | str):
        name = obj if isinstance(obj, str) else obj.__name__
        super().__init__(
            f"Object {name} {obj_id_or_name=} not found",
            f"Объект {name}  с идентификатором {obj_id_or_name} не найден",
        )


class ItemNotFound(ObjectNotFound):
    item_key: int | str

    def __init__(self, item_key: int | str):
        self.item_key = item_key
        super().__init__("Post", item_key)


class InvalidReaction(ReactionsAPIError):
    def __init__(self, reaction: object):
        super().__init__(
            f"Invalid reaction {reaction!r}. Use 'like' or 'dislike'",
            f"Недопустимая реакция {reaction!r}. Разрешены только 'like' или 'dislike'",
        )


class TransientStorageConflict(ReactionsAPIError):
    attempts: int

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not update reaction after {attempts} attempts because of concurrent updates. Try again later",
            f"Не удалось обновить реакцию за {attempts} попыток из-за одновременных изменений. Попробуйте позже",
        )


class StorageConflict(Exception):
    """Backend reported a write conflict, the whole unit of work may be retried"""
