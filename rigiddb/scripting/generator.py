"""Script generator: compiles store operations into script IR.

Each public method appends one operation to a BuildContext. Build-time
problems (unknown collection, bad parameters, values the codec rejects, no
matching index) are recorded as the context's sticky error instead of
raising, and make every later operation on the same context a no-op.

Every operation leaves its reply in ``ret`` as
``{method, errorTag, ...payload}``; failures detected inside the script
return immediately with the same shape.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from rigiddb.domain.enums import ErrorCode, Method
from rigiddb.domain.exceptions import CodecException, OperationException
from rigiddb.domain.schema import Collection, Index, Schema
from rigiddb.infrastructure.redis import keys
from rigiddb.scripting import ir
from rigiddb.scripting.context import BuildContext
from rigiddb.services import index_planner
from rigiddb.services.codec import encode_attributes

logger = logging.getLogger(__name__)

_ID = ir.Var("id")
_KEY = ir.Var("key")
_RET = ir.Var("ret")
_CONFLICTS = ir.Var("conflicts")
_ID_TEXT_RE = re.compile(r"^\d+\Z", re.ASCII)


def _reply(method: Method, code: ErrorCode, *payload: ir.Expr) -> ir.ArrayTable:
    return ir.ArrayTable((ir.Lit(method.value), ir.Lit(code.value), *payload))


def _write(command: str, key: ir.Expr, *args: ir.Expr) -> ir.Do:
    return ir.Do(ir.Call("write", (ir.Lit(command), key, *args)))


def _fail_if(cond: ir.Expr, method: Method, code: ErrorCode) -> ir.If:
    return ir.If(cond, (ir.Return(_reply(method, code)),))


def _coerce_id(record_id: Any, method: Method) -> str:
    """Normalize a record id to its canonical decimal text."""
    if isinstance(record_id, bool):
        raise OperationException(ErrorCode.BAD_PARAMETER.value, method.value)
    if isinstance(record_id, int) and record_id >= 0:
        return str(record_id)
    if isinstance(record_id, str) and _ID_TEXT_RE.match(record_id):
        return str(int(record_id))
    raise OperationException(ErrorCode.BAD_PARAMETER.value, method.value)


class ScriptGenerator:
    """Compiles operations on one prefix/schema pair into script IR."""

    def __init__(self, prefix: str, schema: Schema) -> None:
        self.prefix = prefix
        self.schema = schema

    # Plumbing

    def _append(
        self,
        ctx: BuildContext,
        method: Method,
        build: Callable[[], list[ir.Stmt]],
    ) -> None:
        if ctx.failed:
            return
        try:
            stmts = build()
        except CodecException as e:
            logger.debug("Build of %s rejected: %s", method.value, e.message)
            ctx.fail(OperationException(e.error_code, method.value, e.message))
            return
        except OperationException as e:
            logger.debug("Build of %s rejected: %s", method.value, e.message)
            ctx.fail(e)
            return
        ctx.operations += 1
        ctx.emit(ir.Block(tuple(stmts)))

    def _collection(self, name: str, method: Method) -> Collection:
        collection = self.schema.get(name) if isinstance(name, str) else None
        if collection is None:
            raise OperationException(
                ErrorCode.UNKNOWN_COLLECTION.value,
                method.value,
                f"Unknown collection: {name!r}",
            )
        return collection

    def _attrs(self, attrs: Any, method: Method) -> Mapping[str, Any]:
        if not isinstance(attrs, Mapping):
            raise OperationException(ErrorCode.BAD_PARAMETER.value, method.value)
        return attrs

    def _index_key(self, collection: Collection, index: Index) -> ir.Lit:
        return ir.Lit(index_planner.index_key(self.prefix, collection.name, index))

    def _load_record(
        self, ctx: BuildContext, collection: Collection, record_id: Any, method: Method
    ) -> list[ir.Stmt]:
        """Bind id and key, returning notFound when the record is missing."""
        id_param = ctx.push_param(_coerce_id(record_id, method))
        record_prefix = keys.record_key_prefix(self.prefix, collection.name)
        return [
            ir.Local("id", id_param),
            ir.Local("key", ir.Concat((ir.Lit(record_prefix), _ID))),
            _fail_if(
                ir.BinOp("==", ir.RedisCall("EXISTS", (_KEY,)), ir.Lit(0)),
                method,
                ErrorCode.NOT_FOUND,
            ),
        ]

    def _unique_checks(
        self,
        collection: Collection,
        method: Method,
        record: ir.Var,
        exclude_self: bool,
    ) -> list[ir.Stmt]:
        """Collect names of unique indices whose slot for record is taken.

        The whole script returns notUnique before any write when one is.
        """
        unique = collection.unique_indices()
        if not unique:
            return []
        owner = ir.Var("owner")
        taken: ir.Expr = owner
        if exclude_self:
            taken = ir.BinOp("and", owner, ir.BinOp("~=", owner, _ID))
        stmts: list[ir.Stmt] = [ir.Local("conflicts", ir.ArrayTable())]
        for name, index in unique:
            lookup = ir.RedisCall(
                "HGET",
                (self._index_key(collection, index), index_planner.composite_expr(index, record)),
            )
            append = ir.Assign(
                ir.Item(_CONFLICTS, ir.BinOp("+", ir.Length(_CONFLICTS), ir.Lit(1))),
                ir.Lit(name),
            )
            stmts.append(
                ir.If(
                    ir.Not(index_planner.null_guard_expr(index, record)),
                    (ir.Local("owner", lookup), ir.If(taken, (append,))),
                )
            )
        stmts.append(
            ir.If(
                ir.BinOp(">", ir.Length(_CONFLICTS), ir.Lit(0)),
                (ir.Return(_reply(method, ErrorCode.NOT_UNIQUE, _CONFLICTS)),),
            )
        )
        return stmts

    def _index_ops(
        self, collection: Collection, routine: str, record: ir.Var
    ) -> list[ir.Stmt]:
        """index_add / index_remove for every index of the collection."""
        stmts: list[ir.Stmt] = []
        for _name, index in collection.sorted_indices():
            call = ir.Do(
                ir.Call(
                    routine,
                    (
                        self._index_key(collection, index),
                        index_planner.composite_expr(index, record),
                        _ID,
                        ir.Lit(index.unique),
                    ),
                )
            )
            if index.unique:
                guard = ir.Not(index_planner.null_guard_expr(index, record))
                stmts.append(ir.If(guard, (call,)))
            else:
                stmts.append(call)
        return stmts

    @staticmethod
    def _field_pairs(names: list[str], record: ir.Var) -> tuple[ir.Expr, ...]:
        pairs: list[ir.Expr] = []
        for name in names:
            pairs.extend((ir.Lit(name), ir.Item(record, ir.Lit(name))))
        return tuple(pairs)

    # Writes

    def create(self, ctx: BuildContext, collection: str, attrs: Any) -> None:
        """Insert a record with every declared field set."""
        method = Method.CREATE

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            values = encode_attributes(coll, self._attrs(attrs, method))
            if set(values) != coll.field_names:
                raise OperationException(
                    ErrorCode.BAD_PARAMETER.value,
                    method.value,
                    "create must set all attributes",
                )
            rec = ir.Var("rec")
            names = list(coll.definition)
            entries = tuple((name, ctx.push_param(values[name])) for name in names)
            next_id = ir.Lit(keys.next_id_key(self.prefix, coll.name))
            record_prefix = ir.Lit(keys.record_key_prefix(self.prefix, coll.name))
            ids = ir.Lit(keys.ids_key(self.prefix, coll.name))
            return [
                # The counter is never rolled back: failed creates leave id gaps.
                ir.Local("id", ir.Call("tostring", (ir.RedisCall("INCR", (next_id,)),))),
                ir.Local("key", ir.Concat((record_prefix, _ID))),
                ir.Local("rec", ir.MapTable(entries)),
                *self._unique_checks(coll, method, rec, exclude_self=False),
                _write("HSET", _KEY, *self._field_pairs(names, rec)),
                *self._index_ops(coll, "index_add", rec),
                _write("ZADD", ids, _ID, _ID),
                ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, _ID)),
            ]

        self._append(ctx, method, build)

    def update(self, ctx: BuildContext, collection: str, record_id: Any, attrs: Any) -> None:
        """Change a subset of a record's fields, keeping indices consistent.

        Uniqueness is checked against the would-be values before any old
        index entry is removed.
        """
        method = Method.UPDATE

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            values = encode_attributes(coll, self._attrs(attrs, method))
            if not values:
                raise OperationException(ErrorCode.BAD_PARAMETER.value, method.value)
            old, new = ir.Var("old"), ir.Var("new")
            stmts = self._load_record(ctx, coll, record_id, method)
            stmts.append(ir.Local("old", ir.Call("to_map", (ir.RedisCall("HGETALL", (_KEY,)),))))
            stmts.append(ir.Local("new", ir.Call("copy", (old,))))
            for name, value in values.items():
                stmts.append(ir.Assign(ir.Item(new, ir.Lit(name)), ctx.push_param(value)))
            stmts.extend(self._unique_checks(coll, method, new, exclude_self=True))
            stmts.extend(self._index_ops(coll, "index_remove", old))
            stmts.extend(self._index_ops(coll, "index_add", new))
            stmts.append(_write("HSET", _KEY, *self._field_pairs(list(values), new)))
            stmts.append(ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, ir.Lit(True))))
            return stmts

        self._append(ctx, method, build)

    def delete(self, ctx: BuildContext, collection: str, record_id: Any) -> None:
        """Remove a record, its index entries and its id-set membership."""
        method = Method.DELETE

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            rec = ir.Var("rec")
            ids = ir.Lit(keys.ids_key(self.prefix, coll.name))
            return [
                *self._load_record(ctx, coll, record_id, method),
                ir.Local("rec", ir.Call("to_map", (ir.RedisCall("HGETALL", (_KEY,)),))),
                *self._index_ops(coll, "index_remove", rec),
                _write("ZREM", ids, _ID),
                _write("DEL", _KEY),
                ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR)),
            ]

        self._append(ctx, method, build)

    # Reads

    def get(self, ctx: BuildContext, collection: str, record_id: Any) -> None:
        method = Method.GET

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            return [
                *self._load_record(ctx, coll, record_id, method),
                ir.Assign(
                    _RET,
                    _reply(
                        method,
                        ErrorCode.NO_ERROR,
                        ir.RedisCall("HGETALL", (_KEY,)),
                        ir.Lit(coll.name),
                    ),
                ),
            ]

        self._append(ctx, method, build)

    def exists(self, ctx: BuildContext, collection: str, record_id: Any) -> None:
        method = Method.EXISTS

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            id_param = ctx.push_param(_coerce_id(record_id, method))
            record_prefix = ir.Lit(keys.record_key_prefix(self.prefix, coll.name))
            return [
                ir.Assign(
                    _RET,
                    _reply(
                        method,
                        ErrorCode.NO_ERROR,
                        ir.RedisCall("EXISTS", (ir.Concat((record_prefix, id_param)),)),
                    ),
                )
            ]

        self._append(ctx, method, build)

    def list(self, ctx: BuildContext, collection: str) -> None:
        method = Method.LIST

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            ids = ir.Lit(keys.ids_key(self.prefix, coll.name))
            zrange = ir.RedisCall("ZRANGE", (ids, ir.Lit(0), ir.Lit(-1)))
            return [ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, zrange))]

        self._append(ctx, method, build)

    def size(self, ctx: BuildContext, collection: str) -> None:
        method = Method.SIZE

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            ids = ir.Lit(keys.ids_key(self.prefix, coll.name))
            return [
                ir.Assign(
                    _RET, _reply(method, ErrorCode.NO_ERROR, ir.RedisCall("ZCARD", (ids,)))
                )
            ]

        self._append(ctx, method, build)

    def current_id(self, ctx: BuildContext, collection: str) -> None:
        """Last id handed out for the collection (0 before the first create)."""
        method = Method.CURRENT_ID

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            counter = ir.RedisCall("GET", (ir.Lit(keys.next_id_key(self.prefix, coll.name)),))
            value = ir.Call("tonumber", (ir.BinOp("or", counter, ir.Lit("0")),))
            return [ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, value))]

        self._append(ctx, method, build)

    def find(
        self,
        ctx: BuildContext,
        collection: str,
        attrs: Any,
        method: Method = Method.FIND,
    ) -> None:
        """Ids whose index entry equals attrs; attrs must cover exactly one index.

        Works the same whether the matching entry is currently a single hash
        slot or a promoted set.
        """

        def build() -> list[ir.Stmt]:
            coll = self._collection(collection, method)
            wanted = self._attrs(attrs, method)
            values = encode_attributes(coll, wanted)
            match = index_planner.match_index(coll, values) if len(values) == len(wanted) else None
            if match is None:
                raise OperationException(ErrorCode.UNKNOWN_INDEX.value, method.value)
            _name, index = match
            query = ir.Var("query")
            entries = tuple((name, ctx.push_param(value)) for name, value in values.items())
            lookup = ir.Call(
                "index_find",
                (self._index_key(coll, index), index_planner.composite_expr(index, query)),
            )
            return [
                ir.Local("query", ir.MapTable(entries)),
                ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, lookup)),
            ]

        self._append(ctx, method, build)

    # Schema

    def set_schema(
        self,
        ctx: BuildContext,
        schema_text: str,
        revision: int,
        schema_hash: str,
        replaceable: str | None = None,
    ) -> None:
        """First-write-wins store of the serialized schema.

        An identical schema and revision is accepted again. replaceable is
        a stored value known to be corrupt; it may be overwritten.
        """
        method = Method.SET_SCHEMA

        def build() -> list[ir.Stmt]:
            schema_key = ir.Lit(keys.schema_key(self.prefix))
            revision_key = ir.Lit(keys.schema_revision_key(self.prefix))
            text = ctx.push_param(schema_text)
            rev = ctx.push_param(str(revision))
            digest = ctx.push_param(schema_hash)
            current = ir.Var("current")
            differs = ir.BinOp(
                "or",
                ir.BinOp("~=", current, text),
                ir.BinOp("~=", ir.RedisCall("GET", (revision_key,)), rev),
            )
            stored_ok: ir.Expr = current
            if replaceable is not None:
                stored_ok = ir.BinOp(
                    "and", current, ir.BinOp("~=", current, ctx.push_param(replaceable))
                )
            return [
                ir.Local("current", ir.RedisCall("GET", (schema_key,))),
                ir.If(stored_ok, (_fail_if(differs, method, ErrorCode.SCHEMA_EXISTS),)),
                _write("SET", schema_key, text),
                _write("SET", revision_key, rev),
                ir.Assign(_RET, _reply(method, ErrorCode.NO_ERROR, digest)),
            ]

        self._append(ctx, method, build)
