from typing import Mapping, Optional

from signup.errors import UnknownFieldError
from signup.state import FIELD_NAMES, FormData


class FormDataStore:
    """Holds the answers accumulated across steps.

    Purely a data holder: nothing here validates. The step controller writes,
    the confirmation screen reads.
    """

    def __init__(self, initial: Optional[FormData] = None):
        self._data = initial.model_copy() if initial is not None else FormData()

    def read(self) -> FormData:
        return self._data.model_copy()

    def merge(self, partial: Mapping[str, str]) -> FormData:
        for field in partial:
            if field not in FIELD_NAMES:
                raise UnknownFieldError(field)
        self._data = self._data.model_copy(update=dict(partial))
        return self.read()

    def replace(self, data: FormData) -> None:
        self._data = data.model_copy()
