"""Reduction rules of the step function.

A step has two phases. The eval phase looks at (expr, env, cont) and either
produces the next expression to evaluate or a value (`ret` = 1). The
continuation phase then applies cont to that value, or passes the state
through when there is no value. Each phase has a prelude that decodes the
state, a guard per rule, and a rule body. Guards partition the state space,
so exactly one rule fires per phase.

Everything here is written against StepContext and is shared verbatim by
the evaluator and the frame circuit: adding a rule or a tag means editing
this file only.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, NamedTuple

from lurk_spec.evaluator.context import INT_BITS, Elem, PtrLike, StepContext
from lurk_spec.store import symbols
from lurk_spec.store.pointer import ERROR, NIL, TERMINAL, err, num
from lurk_spec.store.tag import ENV_TAGS, HALTED_CONT_TAGS, NODE_CONT_TAGS, ErrorCode, Tag


class EvalRule(IntEnum):
    TERMINAL = 0
    SELF_EVALUATING = 1
    THUNK = 2
    LOOKUP = 3
    QUOTE = 4
    LAMBDA = 5
    IF = 6
    LET = 7
    LETREC = 8
    UNOP = 9
    BINOP = 10
    APPLY = 11
    INVALID_EXPR = 12


class ContRule(IntEnum):
    PASS = 0
    OUTERMOST = 1
    CALL0 = 2
    CALL = 3
    CALL2 = 4
    LET = 5
    LETREC = 6
    IF = 7
    UNOP = 8
    BINOP = 9
    BINOP2 = 10
    INVALID_CONT = 11


class Step(NamedTuple):
    """Output of a rule: the next state, and whether expr is a value."""
    expr: PtrLike
    env: PtrLike
    cont: PtrLike
    ret: Elem


SELF_EVALUATING_TAGS = frozenset({Tag.NUM, Tag.NIL, Tag.FUN, Tag.COMM})
EXPRESSION_TAGS = SELF_EVALUATING_TAGS | {Tag.SYM, Tag.CONS, Tag.THUNK}

# Heads of special forms, in the order their flags are computed
SPECIAL_FORMS = (
    symbols.QUOTE, symbols.LAMBDA, symbols.IF, symbols.LET, symbols.LETREC,
    *symbols.UNOPS.values(), *symbols.BINOPS.values(),
)


# --- Helpers ---


def select_step(ctx: StepContext, b: Elem, x: Step, y: Step) -> Step:
    return Step(
        ctx.select_ptr(b, x.expr, y.expr),
        ctx.select_ptr(b, x.env, y.env),
        ctx.select_ptr(b, x.cont, y.cont),
        ctx.select(b, x.ret, y.ret),
    )


def error_step(ctx: StepContext, env: PtrLike, code: ErrorCode) -> Step:
    return Step(ctx.const_ptr(err(code)), env, ctx.const_ptr(ERROR), ctx.const(0))


def error_step_with(ctx: StepContext, env: PtrLike, code: Elem) -> Step:
    """Error state whose reason code is itself computed."""
    zero = ctx.const(0)
    value = ctx.make_ptr(ctx.const(Tag.ERR), [code, zero, zero, zero])
    return Step(value, env, ctx.const_ptr(ERROR), zero)


def bool_ptr(ctx: StepContext, b: Elem) -> PtrLike:
    return ctx.select_ptr(b, ctx.const_ptr(symbols.T), ctx.const_ptr(NIL))


def num_ptr(ctx: StepContext, value: Elem) -> PtrLike:
    zero = ctx.const(0)
    return ctx.make_ptr(ctx.const(Tag.NUM), [value, zero, zero, zero])


def _is_small(ctx: StepContext, x: Elem) -> Elem:
    """1 when 0 <= x < 2^INT_BITS."""
    below = ctx.is_negative(ctx.sub(x, ctx.const(1 << INT_BITS)))
    return ctx.and_(ctx.not_(ctx.is_negative(x)), below)


def build_list(ctx: StepContext, items, when: Elem) -> PtrLike:
    """Proper list of `items`, hashed only when `when` is 1."""
    result = ctx.const_ptr(NIL)
    for item in reversed(items):
        result = ctx.hash(Tag.CONS, [item, result], when=when)
    return result


# --- Eval Phase ---


@dataclass
class EvalScope:
    """Decoded eval-phase input.

    For a cons expression (head a1 a2 a3 ...), `rest` is the argument list,
    a1..a3 the first three arguments and `tail1`..`tail3` the list after
    each of them. `arg_count[n]` is 1 when the list has exactly n arguments.
    """
    expr: PtrLike
    env: PtrLike
    cont: PtrLike
    halted: Elem
    is_cons: Elem
    head: PtrLike
    rest: PtrLike
    a1: PtrLike
    a2: PtrLike
    a3: PtrLike
    tail1: PtrLike
    tail2: PtrLike
    tail3: PtrLike
    arg_count: Dict[int, Elem]
    head_is: Dict[PtrLike, Elem]


def eval_prelude(ctx: StepContext, expr: PtrLike, env: PtrLike, cont: PtrLike) -> EvalScope:
    halted = ctx.tag_in(cont, HALTED_CONT_TAGS)
    is_cons = ctx.tag_is(expr, Tag.CONS)

    head, rest = ctx.unhash(expr, 2, when=is_cons)
    c1 = ctx.and_(is_cons, ctx.tag_is(rest, Tag.CONS))
    a1, tail1 = ctx.unhash(rest, 2, when=c1)
    c2 = ctx.and_(c1, ctx.tag_is(tail1, Tag.CONS))
    a2, tail2 = ctx.unhash(tail1, 2, when=c2)
    c3 = ctx.and_(c2, ctx.tag_is(tail2, Tag.CONS))
    a3, tail3 = ctx.unhash(tail2, 2, when=c3)

    arg_count = {
        0: ctx.and_(is_cons, ctx.tag_is(rest, Tag.NIL)),
        1: ctx.and_(c1, ctx.tag_is(tail1, Tag.NIL)),
        2: ctx.and_(c2, ctx.tag_is(tail2, Tag.NIL)),
        3: ctx.and_(c3, ctx.tag_is(tail3, Tag.NIL)),
    }
    head_is = {sym: ctx.ptr_eq(head, ctx.const_ptr(sym)) for sym in SPECIAL_FORMS}

    return EvalScope(expr, env, cont, halted, is_cons, head, rest,
                     a1, a2, a3, tail1, tail2, tail3, arg_count, head_is)


def eval_guards(ctx: StepContext, s: EvalScope) -> Dict[EvalRule, Elem]:
    live = ctx.not_(s.halted)
    is_t = ctx.ptr_eq(s.expr, ctx.const_ptr(symbols.T))
    form = ctx.and_(live, s.is_cons)
    is_unop = ctx.one_of(*[s.head_is[p] for p in symbols.UNOPS.values()])
    is_binop = ctx.one_of(*[s.head_is[p] for p in symbols.BINOPS.values()])
    special = ctx.one_of(*s.head_is.values())

    return {
        EvalRule.TERMINAL: s.halted,
        EvalRule.SELF_EVALUATING: ctx.and_(live, ctx.one_of(ctx.tag_in(s.expr, SELF_EVALUATING_TAGS), is_t)),
        EvalRule.THUNK: ctx.and_(live, ctx.tag_is(s.expr, Tag.THUNK)),
        EvalRule.LOOKUP: ctx.and_(live, ctx.tag_is(s.expr, Tag.SYM), ctx.not_(is_t)),
        EvalRule.QUOTE: ctx.and_(form, s.head_is[symbols.QUOTE]),
        EvalRule.LAMBDA: ctx.and_(form, s.head_is[symbols.LAMBDA]),
        EvalRule.IF: ctx.and_(form, s.head_is[symbols.IF]),
        EvalRule.LET: ctx.and_(form, s.head_is[symbols.LET]),
        EvalRule.LETREC: ctx.and_(form, s.head_is[symbols.LETREC]),
        EvalRule.UNOP: ctx.and_(form, is_unop),
        EvalRule.BINOP: ctx.and_(form, is_binop),
        EvalRule.APPLY: ctx.and_(form, ctx.not_(special)),
        EvalRule.INVALID_EXPR: ctx.and_(live, ctx.not_(ctx.tag_in(s.expr, EXPRESSION_TAGS))),
    }


def _eval_terminal(ctx: StepContext, s: EvalScope) -> Step:
    return Step(s.expr, s.env, s.cont, ctx.const(0))


def _eval_self(ctx: StepContext, s: EvalScope) -> Step:
    return Step(s.expr, s.env, s.cont, ctx.const(1))


def _eval_thunk(ctx: StepContext, s: EvalScope) -> Step:
    value, _ = ctx.unhash(s.expr, 2)
    return Step(value, s.env, s.cont, ctx.const(1))


def _eval_lookup(ctx: StepContext, s: EvalScope) -> Step:
    """Walk at most max_lookup_depth environment nodes for s.expr.

    A binding found in a REC_ENV node whose value is a closure is returned
    re-closed over that node, so the closure sees its own binding.
    """
    node = s.env
    searching = ctx.const(1)
    hit = ctx.const(0)
    found = ctx.const_ptr(NIL)
    found_node = ctx.const_ptr(NIL)

    for _ in range(ctx.config.max_lookup_depth):
        active = ctx.and_(searching, ctx.tag_in(node, ENV_TAGS))
        var, val, parent = ctx.unhash(node, 3, when=active)
        match = ctx.and_(active, ctx.ptr_eq(var, s.expr))
        found = ctx.select_ptr(match, val, found)
        found_node = ctx.select_ptr(match, node, found_node)
        hit = ctx.add(hit, match)
        searching = ctx.and_(active, ctx.not_(match))
        node = parent

    reclose = ctx.and_(hit, ctx.tag_is(found_node, Tag.REC_ENV), ctx.tag_is(found, Tag.FUN))
    arg, body, _ = ctx.unhash(found, 3, when=reclose)
    closure = ctx.hash(Tag.FUN, [arg, body, found_node], when=reclose)
    value = ctx.select_ptr(reclose, closure, found)

    exceeded = ctx.and_(searching, ctx.tag_in(node, ENV_TAGS))
    failed = select_step(ctx, exceeded,
                         error_step(ctx, s.env, ErrorCode.DEPTH_EXCEEDED),
                         error_step(ctx, s.env, ErrorCode.UNBOUND_VARIABLE))
    return select_step(ctx, hit, Step(value, s.env, s.cont, ctx.const(1)), failed)


def _eval_quote(ctx: StepContext, s: EvalScope) -> Step:
    return select_step(ctx, s.arg_count[1],
                       Step(s.a1, s.env, s.cont, ctx.const(1)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _eval_lambda(ctx: StepContext, s: EvalScope) -> Step:
    """(lambda (p1 p2 ...) body) closes over p1 with body (lambda (p2 ...) body)."""
    params, body = s.a1, s.a2
    no_params = ctx.tag_is(params, Tag.NIL)
    has_params = ctx.tag_is(params, Tag.CONS)
    first, more = ctx.unhash(params, 2, when=has_params)
    curried = ctx.tag_is(more, Tag.CONS)
    proper = ctx.one_of(curried, ctx.tag_is(more, Tag.NIL))

    ok = ctx.and_(s.arg_count[2], ctx.one_of(
        no_params,
        ctx.and_(has_params, ctx.tag_is(first, Tag.SYM), proper),
    ))
    inner = build_list(ctx, [ctx.const_ptr(symbols.LAMBDA), more, body], when=ctx.and_(ok, curried))
    arg = ctx.select_ptr(no_params, ctx.const_ptr(symbols.DUMMY_ARG), first)
    fun_body = ctx.select_ptr(curried, inner, body)
    fun = ctx.hash(Tag.FUN, [arg, fun_body, s.env], when=ok)

    return select_step(ctx, ok,
                       Step(fun, s.env, s.cont, ctx.const(1)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _eval_if(ctx: StepContext, s: EvalScope) -> Step:
    ok = s.arg_count[3]
    cont = ctx.hash(Tag.IF, [s.a2, s.a3, s.env, s.cont], when=ok)
    return select_step(ctx, ok,
                       Step(s.a1, s.env, cont, ctx.const(0)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _binding_form(tag: Tag) -> Callable[[StepContext, EvalScope], Step]:
    """Rule for (let ((x e) ...) body) and its letrec twin.

    One binding is processed per step: the remaining bindings are folded
    into a nested form of the same kind that becomes the new body.
    """

    def rule(ctx: StepContext, s: EvalScope) -> Step:
        bindings, body = s.a1, s.a2
        empty = ctx.tag_is(bindings, Tag.NIL)
        nonempty = ctx.tag_is(bindings, Tag.CONS)
        binding, rest = ctx.unhash(bindings, 2, when=nonempty)
        b1 = ctx.and_(nonempty, ctx.tag_is(binding, Tag.CONS))
        var, var_tail = ctx.unhash(binding, 2, when=b1)
        b2 = ctx.and_(b1, ctx.tag_is(var_tail, Tag.CONS))
        init, end = ctx.unhash(var_tail, 2, when=b2)

        more = ctx.tag_is(rest, Tag.CONS)
        well_formed = ctx.and_(b2, ctx.tag_is(var, Tag.SYM), ctx.tag_is(end, Tag.NIL),
                               ctx.one_of(more, ctx.tag_is(rest, Tag.NIL)))
        ok = ctx.and_(s.arg_count[2], ctx.one_of(empty, well_formed))
        binds = ctx.and_(ok, ctx.not_(empty))

        inner = build_list(ctx, [s.head, rest, body], when=ctx.and_(binds, more))
        next_body = ctx.select_ptr(more, inner, body)
        cont = ctx.hash(tag, [var, next_body, s.env, s.cont], when=binds)

        step = select_step(ctx, empty,
                           Step(body, s.env, s.cont, ctx.const(0)),
                           Step(init, s.env, cont, ctx.const(0)))
        return select_step(ctx, ok, step, error_step(ctx, s.env, ErrorCode.INVALID_FORM))

    rule.__name__ = f"_eval_{tag.name.lower()}"
    return rule


def _eval_unop(ctx: StepContext, s: EvalScope) -> Step:
    ok = s.arg_count[1]
    nil = ctx.const_ptr(NIL)
    cont = ctx.hash(Tag.UNOP, [s.head, nil, nil, s.cont], when=ok)
    return select_step(ctx, ok,
                       Step(s.a1, s.env, cont, ctx.const(0)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _eval_binop(ctx: StepContext, s: EvalScope) -> Step:
    ok = s.arg_count[2]
    cont = ctx.hash(Tag.BINOP, [s.head, s.a2, s.env, s.cont], when=ok)
    return select_step(ctx, ok,
                       Step(s.a1, s.env, cont, ctx.const(0)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _eval_apply(ctx: StepContext, s: EvalScope) -> Step:
    """(f) pushes CALL0; (f a ...) pushes CALL for the first argument."""
    nil = ctx.const_ptr(NIL)
    no_args = s.arg_count[0]
    ok = ctx.one_of(no_args, ctx.tag_is(s.rest, Tag.CONS))

    tag = ctx.select(no_args, ctx.const(Tag.CALL0), ctx.const(Tag.CALL))
    children = [
        ctx.select_ptr(no_args, s.env, s.a1),
        ctx.select_ptr(no_args, nil, s.tail1),
        ctx.select_ptr(no_args, nil, s.env),
        s.cont,
    ]
    cont = ctx.hash(tag, children, when=ok)
    return select_step(ctx, ok,
                       Step(s.head, s.env, cont, ctx.const(0)),
                       error_step(ctx, s.env, ErrorCode.INVALID_FORM))


def _eval_invalid(ctx: StepContext, s: EvalScope) -> Step:
    return error_step(ctx, s.env, ErrorCode.INVALID_EXPRESSION)


EVAL_RULES: Dict[EvalRule, Callable[[StepContext, EvalScope], Step]] = {
    EvalRule.TERMINAL: _eval_terminal,
    EvalRule.SELF_EVALUATING: _eval_self,
    EvalRule.THUNK: _eval_thunk,
    EvalRule.LOOKUP: _eval_lookup,
    EvalRule.QUOTE: _eval_quote,
    EvalRule.LAMBDA: _eval_lambda,
    EvalRule.IF: _eval_if,
    EvalRule.LET: _binding_form(Tag.LET),
    EvalRule.LETREC: _binding_form(Tag.LETREC),
    EvalRule.UNOP: _eval_unop,
    EvalRule.BINOP: _eval_binop,
    EvalRule.APPLY: _eval_apply,
    EvalRule.INVALID_EXPR: _eval_invalid,
}


# --- Continuation Phase ---


@dataclass
class ContScope:
    """Decoded continuation-phase input: the eval-phase output and cont's children."""
    value: PtrLike
    env: PtrLike
    cont: PtrLike
    ret: Elem
    children: tuple


def cont_prelude(ctx: StepContext, mid: Step) -> ContScope:
    is_node = ctx.tag_in(mid.cont, NODE_CONT_TAGS)
    children = ctx.unhash(mid.cont, 4, when=ctx.and_(mid.ret, is_node))
    return ContScope(mid.expr, mid.env, mid.cont, mid.ret, tuple(children))


_CONT_RULE_TAGS = {
    ContRule.OUTERMOST: Tag.OUTERMOST,
    ContRule.CALL0: Tag.CALL0,
    ContRule.CALL: Tag.CALL,
    ContRule.CALL2: Tag.CALL2,
    ContRule.LET: Tag.LET,
    ContRule.LETREC: Tag.LETREC,
    ContRule.IF: Tag.IF,
    ContRule.UNOP: Tag.UNOP,
    ContRule.BINOP: Tag.BINOP,
    ContRule.BINOP2: Tag.BINOP2,
}


def cont_guards(ctx: StepContext, s: ContScope) -> Dict[ContRule, Elem]:
    guards = {ContRule.PASS: ctx.not_(s.ret)}
    for rule, tag in _CONT_RULE_TAGS.items():
        guards[rule] = ctx.and_(s.ret, ctx.tag_is(s.cont, tag))
    guards[ContRule.INVALID_CONT] = ctx.and_(
        s.ret, ctx.not_(ctx.tag_in(s.cont, _CONT_RULE_TAGS.values())))
    return guards


def _returning(ctx: StepContext, value: PtrLike, env: PtrLike, cont: PtrLike, when: Elem) -> Step:
    """Hand a computed value to `cont` on the next step, wrapped so it is not re-evaluated."""
    thunk = ctx.hash(Tag.THUNK, [value, ctx.const_ptr(NIL)], when=when)
    return Step(thunk, env, cont, ctx.const(0))


def _cont_pass(ctx: StepContext, s: ContScope) -> Step:
    return Step(s.value, s.env, s.cont, ctx.const(0))


def _cont_outermost(ctx: StepContext, s: ContScope) -> Step:
    return Step(s.value, s.env, ctx.const_ptr(TERMINAL), ctx.const(0))


def _cont_call0(ctx: StepContext, s: ContScope) -> Step:
    _, _, _, next_cont = s.children
    is_fun = ctx.tag_is(s.value, Tag.FUN)
    arg, body, fun_env = ctx.unhash(s.value, 3, when=is_fun)
    nullary = ctx.ptr_eq(arg, ctx.const_ptr(symbols.DUMMY_ARG))

    failed = select_step(ctx, is_fun,
                         error_step(ctx, s.env, ErrorCode.ARGUMENT_ERROR),
                         error_step(ctx, s.env, ErrorCode.NOT_A_FUNCTION))
    return select_step(ctx, ctx.and_(is_fun, nullary),
                       Step(body, fun_env, next_cont, ctx.const(0)),
                       failed)


def _cont_call(ctx: StepContext, s: ContScope) -> Step:
    arg, more, saved_env, next_cont = s.children
    is_fun = ctx.tag_is(s.value, Tag.FUN)
    cont = ctx.hash(Tag.CALL2, [s.value, more, saved_env, next_cont], when=is_fun)
    return select_step(ctx, is_fun,
                       Step(arg, saved_env, cont, ctx.const(0)),
                       error_step(ctx, s.env, ErrorCode.NOT_A_FUNCTION))


def _cont_call2(ctx: StepContext, s: ContScope) -> Step:
    """Bind the argument and enter the body; further arguments go to the body's result."""
    fun, more, saved_env, next_cont = s.children
    is_fun = ctx.tag_is(fun, Tag.FUN)
    param, body, fun_env = ctx.unhash(fun, 3, when=is_fun)
    nullary = ctx.ptr_eq(param, ctx.const_ptr(symbols.DUMMY_ARG))
    has_more = ctx.tag_is(more, Tag.CONS)
    proper = ctx.one_of(has_more, ctx.tag_is(more, Tag.NIL))
    ok = ctx.and_(is_fun, ctx.not_(nullary), proper)

    env = ctx.hash(Tag.ENV, [param, s.value, fun_env], when=ok)
    chained = ctx.and_(ok, has_more)
    next_arg, rest = ctx.unhash(more, 2, when=chained)
    call = ctx.hash(Tag.CALL, [next_arg, rest, saved_env, next_cont], when=chained)
    cont = ctx.select_ptr(has_more, call, next_cont)

    failed = select_step(ctx, is_fun,
                         error_step(ctx, s.env, ErrorCode.ARGUMENT_ERROR),
                         error_step(ctx, s.env, ErrorCode.NOT_A_FUNCTION))
    return select_step(ctx, ok, Step(body, env, cont, ctx.const(0)), failed)


def _cont_binding(tag: Tag) -> Callable[[StepContext, ContScope], Step]:
    def rule(ctx: StepContext, s: ContScope) -> Step:
        var, body, saved_env, next_cont = s.children
        env = ctx.hash(tag, [var, s.value, saved_env])
        return Step(body, env, next_cont, ctx.const(0))

    rule.__name__ = f"_cont_{tag.name.lower()}"
    return rule


def _cont_if(ctx: StepContext, s: ContScope) -> Step:
    then_branch, else_branch, saved_env, next_cont = s.children
    is_nil = ctx.tag_is(s.value, Tag.NIL)
    branch = ctx.select_ptr(is_nil, else_branch, then_branch)
    return Step(branch, saved_env, next_cont, ctx.const(0))


def _cont_unop(ctx: StepContext, s: ContScope) -> Step:
    """Apply a unary builtin to s.value.

    car/cdr split a cons and secret/open split a commitment; the four
    share one unhash of s.value.
    """
    op, _, _, next_cont = s.children
    nil = ctx.const_ptr(NIL)
    is_op = {name: ctx.ptr_eq(op, ctx.const_ptr(sym)) for name, sym in symbols.UNOPS.items()}
    is_cons = ctx.tag_is(s.value, Tag.CONS)
    is_nil = ctx.tag_is(s.value, Tag.NIL)
    is_comm = ctx.tag_is(s.value, Tag.COMM)
    list_op = ctx.one_of(is_op["car"], is_op["cdr"])
    comm_op = ctx.one_of(is_op["secret"], is_op["open"])

    splits = ctx.one_of(ctx.and_(list_op, is_cons), ctx.and_(comm_op, is_comm))
    first, second = ctx.unhash(s.value, 2, when=splits)
    part = ctx.select_ptr(ctx.one_of(is_op["car"], is_op["secret"]), first, second)
    part = ctx.select_ptr(is_nil, nil, part)

    bad_argument = ctx.one_of(
        ctx.and_(list_op, ctx.not_(ctx.one_of(is_cons, is_nil))),
        ctx.and_(comm_op, ctx.not_(is_comm)),
    )
    known_op = ctx.one_of(*is_op.values())
    ok = ctx.and_(known_op, ctx.not_(bad_argument))

    commitment = ctx.hash(Tag.COMM, [ctx.const_ptr(num(0)), s.value], when=ctx.and_(ok, is_op["commit"]))
    ctx.emit(s.value, when=ctx.and_(ok, is_op["emit"]))
    result = ctx.select_ptr(is_op["atom"], bool_ptr(ctx, ctx.not_(is_cons)),
                            ctx.select_ptr(is_op["commit"], commitment,
                                           ctx.select_ptr(is_op["emit"], s.value, part)))

    code = ctx.select(known_op, ctx.const(ErrorCode.ARGUMENT_ERROR),
                      ctx.const(ErrorCode.INVALID_CONTINUATION))
    return select_step(ctx, ok,
                       _returning(ctx, result, s.env, next_cont, when=ok),
                       error_step_with(ctx, s.env, code))


def _cont_binop(ctx: StepContext, s: ContScope) -> Step:
    op, arg2, saved_env, next_cont = s.children
    cont = ctx.hash(Tag.BINOP2, [op, s.value, ctx.const_ptr(NIL), next_cont])
    return Step(arg2, saved_env, cont, ctx.const(0))


def _cont_binop2(ctx: StepContext, s: ContScope) -> Step:
    """Apply a binary builtin to (first operand, s.value).

    The four orderings share one signed less-than: > and <= swap the
    operands, <= and >= negate the result. % is the integer remainder of
    operands in [0, 2^INT_BITS). (hide a b) commits to b blinded by the
    number a.
    """
    op, a, _, next_cont = s.children
    b = s.value
    is_op = {name: ctx.ptr_eq(op, ctx.const_ptr(sym)) for name, sym in symbols.BINOPS.items()}

    x, y = a.digest[0], b.digest[0]
    a_num = ctx.tag_is(a, Tag.NUM)
    nums = ctx.and_(a_num, ctx.tag_is(b, Tag.NUM))
    quotient, y_zero = ctx.div(x, y)
    small = ctx.and_(_is_small(ctx, x), _is_small(ctx, y))
    _, remainder = ctx.div_rem(x, y, when=ctx.and_(is_op["%"], nums, small, ctx.not_(y_zero)))
    value = ctx.select(is_op["+"], ctx.add(x, y),
                       ctx.select(is_op["-"], ctx.sub(x, y),
                                  ctx.select(is_op["*"], ctx.mul(x, y),
                                             ctx.select(is_op["/"], quotient, remainder))))

    swap = ctx.one_of(is_op[">"], is_op["<="])
    negate = ctx.one_of(is_op["<="], is_op[">="])
    less = ctx.lt(ctx.select(swap, y, x), ctx.select(swap, x, y))
    ordered = ctx.xor(less, negate)
    truth = ctx.select(is_op["="], ctx.eq(x, y),
                       ctx.select(is_op["eq"], ctx.ptr_eq(a, b), ordered))

    arithmetic = ctx.one_of(is_op["+"], is_op["-"], is_op["*"], is_op["/"], is_op["%"])
    numeric = ctx.one_of(arithmetic, is_op["="], is_op["<"], is_op[">"], is_op["<="], is_op[">="])
    pair = ctx.hash(Tag.CONS, [a, b], when=is_op["cons"])
    commitment = ctx.hash(Tag.COMM, [a, b], when=ctx.and_(is_op["hide"], a_num))
    result = ctx.select_ptr(is_op["cons"], pair,
                            ctx.select_ptr(is_op["hide"], commitment,
                                           ctx.select_ptr(arithmetic, num_ptr(ctx, value), bool_ptr(ctx, truth))))

    known_op = ctx.one_of(*is_op.values())
    bad_argument = ctx.one_of(
        ctx.and_(numeric, ctx.not_(nums)),
        ctx.and_(is_op["%"], nums, ctx.not_(small)),
        ctx.and_(is_op["hide"], ctx.not_(a_num)),
    )
    div_by_zero = ctx.and_(ctx.one_of(is_op["/"], is_op["%"]), nums, y_zero)
    ok = ctx.and_(known_op, ctx.not_(bad_argument), ctx.not_(div_by_zero))

    code = ctx.select(known_op,
                      ctx.select(bad_argument, ctx.const(ErrorCode.ARGUMENT_ERROR),
                                 ctx.const(ErrorCode.DIVISION_BY_ZERO)),
                      ctx.const(ErrorCode.INVALID_CONTINUATION))
    return select_step(ctx, ok,
                       _returning(ctx, result, s.env, next_cont, when=ok),
                       error_step_with(ctx, s.env, code))


def _cont_invalid(ctx: StepContext, s: ContScope) -> Step:
    return error_step(ctx, s.env, ErrorCode.INVALID_CONTINUATION)


CONT_RULES: Dict[ContRule, Callable[[StepContext, ContScope], Step]] = {
    ContRule.PASS: _cont_pass,
    ContRule.OUTERMOST: _cont_outermost,
    ContRule.CALL0: _cont_call0,
    ContRule.CALL: _cont_call,
    ContRule.CALL2: _cont_call2,
    ContRule.LET: _cont_binding(Tag.ENV),
    ContRule.LETREC: _cont_binding(Tag.REC_ENV),
    ContRule.IF: _cont_if,
    ContRule.UNOP: _cont_unop,
    ContRule.BINOP: _cont_binop,
    ContRule.BINOP2: _cont_binop2,
    ContRule.INVALID_CONT: _cont_invalid,
}
