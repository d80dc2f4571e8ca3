# The MIT License (MIT)
#
# Copyright (c) Arie Bovenberg
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
"""The possible relations between a local time and its UTC offset(s)

Offsets are in seconds, and so are the local and exact times
(relative to the epoch) that the candidates are computed from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

Disambiguate = Literal["compatible", "earlier", "later", "reject"]


@dataclass(frozen=True)
class Unambiguous:
    """The local time occurs exactly once"""

    offset: int

    def candidates(self, local: int) -> list[int]:
        return [local - self.offset]


@dataclass(frozen=True)
class Gap:
    """The local time is skipped because clocks moved forward from
    ``before`` to ``after``"""

    after: int
    before: int

    def candidates(self, local: int) -> list[int]:
        return []


@dataclass(frozen=True)
class Fold:
    """The local time occurs twice because clocks moved back from
    ``before`` to ``after``"""

    before: int
    after: int

    def candidates(self, local: int) -> list[int]:
        # earliest first
        return [local - self.before, local - self.after]


Ambiguity = Union[Unambiguous, Gap, Fold]
