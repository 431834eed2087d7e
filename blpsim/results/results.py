"""Abstract structuring of computed results."""

import abc
from pathlib import Path
import pickle
from typing import Sequence, Union

from ..utilities.basics import StringRepresentation


class Results(abc.ABC, StringRepresentation):
    """Abstract results that can be summarized, converted into a dictionary, and saved as a pickle file."""

    _default_attributes: Sequence[str] = ()

    @abc.abstractmethod
    def __str__(self) -> str:
        """Format results as a string."""

    def to_pickle(self, path: Union[str, Path]) -> None:
        """Save these results as a pickle file.

        Parameters
        ----------
        path: `str or Path`
            File path to which these results will be saved.

        """
        with open(path, 'wb') as handle:
            pickle.dump(self, handle)

    def to_dict(self, attributes: Sequence[str] = ()) -> dict:
        """Convert these results into a dictionary that maps attribute names to values.

        Parameters
        ----------
        attributes : `sequence of str, optional`
            Name of attributes that will be added to the dictionary. By default, all documented attributes are added
            except for the object that created these results.

        Returns
        -------
        `dict`
            Mapping from attribute names to values.

        """
        return {k: getattr(self, k) for k in attributes or self._default_attributes}
