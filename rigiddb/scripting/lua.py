"""Renders script IR to Redis Lua.

The rendered script is: the shared prelude (index routines and the write
journal), the operation bodies in order, and a trailing ``return ret``.
Identical IR always renders to identical text, so the SHA1 of the text is a
stable cache key for one operation shape.
"""

from __future__ import annotations

from rigiddb.core.constants import KEY_SEP, NULL_SENTINEL
from rigiddb.domain.enums import ErrorCode, Method
from rigiddb.scripting import ir

_INDENT = "  "

_PRELUDE = """\
local NULL = {null}
local SEP = {sep}
local JOURNAL = {journal}
local saved, touched = {{}}, {{}}

local function touch(key)
  if JOURNAL and saved[key] == nil then
    saved[key] = redis.call('DUMP', key) or false
    touched[#touched + 1] = key
  end
end

local function rollback()
  for i = #touched, 1, -1 do
    local key = touched[i]
    redis.call('DEL', key)
    if saved[key] then
      redis.call('RESTORE', key, 0, saved[key])
    end
  end
end

local function write(command, key, ...)
  touch(key)
  return redis.call(command, key, ...)
end

local function to_map(flat)
  local map = {{}}
  for i = 1, #flat, 2 do
    map[flat[i]] = flat[i + 1]
  end
  return map
end

local function copy(map)
  local out = {{}}
  for k, v in pairs(map) do
    out[k] = v
  end
  return out
end

local function has_null(rec, fields)
  for _, name in ipairs(fields) do
    if rec[name] == NULL then
      return true
    end
  end
  return false
end

local function composite(rec, fields, folds)
  local parts = {{}}
  for i, name in ipairs(fields) do
    local value = rec[name]
    if folds[i] then
      value = string.lower(value)
    end
    parts[i] = (string.gsub(value, SEP, SEP .. SEP))
  end
  return table.concat(parts, SEP)
end

local function index_add(key, value, id, unique)
  if unique then
    write('HSET', key, value, id)
    return
  end
  local members = key .. SEP .. value
  if redis.call('EXISTS', members) == 1 then
    write('SADD', members, id)
    return
  end
  local current = redis.call('HGET', key, value)
  if current and current ~= id then
    write('HDEL', key, value)
    write('SADD', members, current, id)
  else
    write('HSET', key, value, id)
  end
end

local function index_remove(key, value, id, unique)
  if redis.call('HGET', key, value) == id then
    write('HDEL', key, value)
    return
  end
  if unique then
    return
  end
  local members = key .. SEP .. value
  if write('SREM', members, id) == 1 and redis.call('SCARD', members) == 1 then
    local last = redis.call('SMEMBERS', members)[1]
    write('DEL', members)
    write('HSET', key, value, last)
  end
end

local function index_find(key, value)
  local id = redis.call('HGET', key, value)
  if id then
    return {{ tonumber(id) }}
  end
  local ids = redis.call('SMEMBERS', key .. SEP .. value)
  for i, member in ipairs(ids) do
    ids[i] = tonumber(member)
  end
  table.sort(ids)
  return ids
end
"""


def quote(value: str) -> str:
    """Lua single-quoted string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\0", "\\0")
    )
    return f"'{escaped}'"


def render_expr(expr: ir.Expr) -> str:
    """Render one expression."""
    if isinstance(expr, ir.Lit):
        value = expr.value
        if value is None:
            return "nil"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        return quote(value)
    if isinstance(expr, ir.Param):
        return f"ARGV[{expr.index}]"
    if isinstance(expr, ir.Var):
        return expr.name
    if isinstance(expr, ir.Call):
        return f"{expr.func}({_render_args(expr.args)})"
    if isinstance(expr, ir.RedisCall):
        args = [quote(expr.command), *(render_expr(a) for a in expr.args)]
        return f"redis.call({', '.join(args)})"
    if isinstance(expr, ir.Concat):
        return " .. ".join(render_expr(p) for p in expr.parts)
    if isinstance(expr, ir.ArrayTable):
        return "{" + _render_args(expr.items) + "}"
    if isinstance(expr, ir.MapTable):
        entries = ", ".join(
            f"[{quote(k)}] = {render_expr(v)}" for k, v in expr.entries
        )
        return "{" + entries + "}"
    if isinstance(expr, ir.Item):
        return f"{render_expr(expr.table)}[{render_expr(expr.key)}]"
    if isinstance(expr, ir.BinOp):
        return f"({render_expr(expr.left)} {expr.op} {render_expr(expr.right)})"
    if isinstance(expr, ir.Not):
        return f"not {render_expr(expr.operand)}"
    if isinstance(expr, ir.Length):
        return f"#{render_expr(expr.operand)}"
    raise TypeError(f"Unknown expression node: {expr!r}")


def _render_args(args: tuple[ir.Expr, ...]) -> str:
    return ", ".join(render_expr(a) for a in args)


def render_stmt(stmt: ir.Stmt, depth: int = 0) -> list[str]:
    """Render one statement to indented lines."""
    pad = _INDENT * depth
    if isinstance(stmt, ir.Local):
        return [f"{pad}local {stmt.name} = {render_expr(stmt.value)}"]
    if isinstance(stmt, ir.Assign):
        return [f"{pad}{render_expr(stmt.target)} = {render_expr(stmt.value)}"]
    if isinstance(stmt, ir.Do):
        return [f"{pad}{render_expr(stmt.expr)}"]
    if isinstance(stmt, ir.Return):
        return [f"{pad}rollback()", f"{pad}return {render_expr(stmt.value)}"]
    if isinstance(stmt, ir.If):
        lines = [f"{pad}if {render_expr(stmt.cond)} then"]
        lines.extend(_render_body(stmt.body, depth + 1))
        lines.append(f"{pad}end")
        return lines
    if isinstance(stmt, ir.Block):
        return [f"{pad}do", *_render_body(stmt.body, depth + 1), f"{pad}end"]
    raise TypeError(f"Unknown statement node: {stmt!r}")


def _render_body(body: tuple[ir.Stmt, ...] | list[ir.Stmt], depth: int) -> list[str]:
    lines: list[str] = []
    for stmt in body:
        lines.extend(render_stmt(stmt, depth))
    return lines


def render_script(body: list[ir.Stmt], journal: bool = False) -> str:
    """Render a complete script.

    Args:
        body: Operation statements in execution order.
        journal: Restore every written key on an early error return. Needed
            only when the script holds more than one operation.

    Returns:
        Lua source ending in ``return ret``.
    """
    prelude = _PRELUDE.format(
        null=quote(NULL_SENTINEL),
        sep=quote(KEY_SEP),
        journal="true" if journal else "false",
    )
    initial = ir.Local(
        "ret",
        ir.ArrayTable((ir.Lit(Method.NONE.value), ir.Lit(ErrorCode.NO_ERROR.value))),
    )
    lines = [prelude, *render_stmt(initial), *_render_body(body, 0), "return ret", ""]
    return "\n".join(lines)
