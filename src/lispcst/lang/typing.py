import uuid
from datetime import datetime
from decimal import Decimal
from fractions import Fraction
from re import Pattern
from typing import Any, Union

from lispcst.lang import cst
from lispcst.lang import keyword as kw
from lispcst.lang import list as llist
from lispcst.lang import map as lmap
from lispcst.lang import set as lset
from lispcst.lang import symbol as sym
from lispcst.lang import vector as vec
from lispcst.lang.numbers import BigInt
from lispcst.lang.tagged import TaggedLiteral

# Values produced for forms read in value mode
LispForm = Union[
    None,
    bool,
    int,
    BigInt,
    float,
    Decimal,
    Fraction,
    str,
    kw.Keyword,
    sym.Symbol,
    llist.PersistentList,
    vec.PersistentVector,
    lmap.PersistentMap,
    lset.PersistentSet,
    Pattern,
    datetime,
    uuid.UUID,
    TaggedLiteral,
]
# Data readers and record constructors may return any object
ReaderForm = Union[LispForm, cst.SyntaxNode, Any]
