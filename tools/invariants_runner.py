#!/usr/bin/env python3
# tools/invariants_runner.py
#
# Seeded property tests and a mutation fuzzer for the gbln package.
#
# This runner:
# - generates random native trees (objects, arrays, every scalar variant)
# - checks conversion and rendering invariants on each
# - mutates rendered text and checks the parser fails cleanly
# - checks that no trial leaves a handle or arena node behind
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import os, sys, json, random
from typing import Any, Dict, List

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT)

from gbln import (
    GblnError,
    INT_BOUNDS,
    Registry,
    Typed,
    native_to_serialized,
    parse_to_native,
    roundtrip,
)

SEED = int(os.environ.get("GBLN_SEED", "1337"))
TRIALS = int(os.environ.get("GBLN_TRIALS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("GBLN_GEN_MAX_DEPTH", "5"))
MAX_KEYS = int(os.environ.get("GBLN_GEN_MAX_KEYS", "6"))
MAX_LIST = int(os.environ.get("GBLN_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("GBLN_GEN_MAX_STR", "24"))
MUTATIONS = int(os.environ.get("GBLN_MUTATIONS", "8"))

KEY_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-."
# Characters that are structural somewhere in the grammar.
NOISE = "<>()[]{}\\:| \n\tx0-"

random.seed(SEED)

def rand_key() -> str:
    return "".join(random.choice(KEY_ALPHABET) for _ in range(random.randint(1, 8)))

def rand_utf8_string() -> str:
    # Scalars only, no surrogates; structural characters show up often.
    out = []
    n = random.randint(0, MAX_STR)
    for _ in range(n):
        r = random.random()
        if r < 0.60:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.70:
            out.append(random.choice("()[]{}<>\\ \t\n:|"))
        elif r < 0.85:
            out.append(chr(random.randint(0xA0, 0xFF)))
        elif r < 0.95:
            out.append(chr(random.randint(0x0100, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_int() -> int:
    width, signed = random.choice(list(INT_BOUNDS))
    lo, hi = INT_BOUNDS[(width, signed)]
    r = random.random()
    if r < 0.2:
        return lo
    if r < 0.4:
        return hi
    return random.randint(lo, hi)

def rand_scalar() -> Any:
    r = random.random()
    if r < 0.35:
        return rand_int()
    if r < 0.50:
        return random.uniform(-1e6, 1e6) * 10 ** random.randint(-20, 20)
    if r < 0.80:
        return rand_utf8_string()
    if r < 0.92:
        return random.random() < 0.5
    return None

def gen_value(depth: int) -> Any:
    if depth >= MAX_GEN_DEPTH:
        return rand_scalar()
    r = random.random()
    if r < 0.35:
        d: Dict[str, Any] = {}
        for _ in range(random.randint(0, MAX_KEYS)):
            d[rand_key()] = gen_value(depth + 1)
        return d
    if r < 0.60:
        return [gen_value(depth + 1) for _ in range(random.randint(0, MAX_LIST))]
    if r < 0.70:
        # homogeneous run, rendered as a typed array when hints agree
        return [rand_int() for _ in range(random.randint(1, MAX_LIST))]
    return rand_scalar()

def mutate(text: str) -> str:
    chars = list(text)
    for _ in range(random.randint(1, 3)):
        op = random.random()
        pos = random.randint(0, len(chars))
        if op < 0.4 and chars:
            del chars[min(pos, len(chars) - 1)]
        elif op < 0.8:
            chars.insert(pos, random.choice(NOISE))
        elif chars:
            chars[min(pos, len(chars) - 1)] = random.choice(NOISE)
    return "".join(chars)

def fail(label: str, context: Dict[str, Any]) -> int:
    print("INVARIANT FAIL:", label)
    print("CTX:", json.dumps(context, ensure_ascii=False, default=repr)[:2000])
    return 1

def leaked(registry: Registry) -> bool:
    stats = registry.stats()
    return bool(stats["outstanding"] or stats["live_nodes"])

def main() -> int:
    fuzz_errors = 0
    for t in range(TRIALS):
        v = gen_value(0)
        registry = Registry()

        # (1) native -> text -> native is the identity
        compact = native_to_serialized(v, registry=registry)
        pretty = native_to_serialized(v, pretty=True, registry=registry)
        if parse_to_native(compact, registry=registry) != v:
            return fail("compact native round trip", {"trial": t, "text": compact})
        if parse_to_native(pretty, registry=registry) != v:
            return fail("pretty native round trip", {"trial": t, "text": pretty})

        # (2) rendering is a normal form
        if roundtrip(compact, registry=registry) != compact:
            return fail("compact normal form", {"trial": t, "text": compact})
        if roundtrip(pretty, pretty=True, registry=registry) != pretty:
            return fail("pretty normal form", {"trial": t, "text": pretty})

        # (3) typed extraction keeps every hint
        typed = parse_to_native(compact, typed=True, registry=registry)
        if native_to_serialized(typed, registry=registry) != compact:
            return fail("typed hint preservation", {"trial": t, "text": compact})

        # (4) mutated text parses or fails with a GblnError, never anything else
        for _ in range(MUTATIONS):
            broken = mutate(compact)
            try:
                roundtrip(broken, registry=registry)
            except GblnError:
                fuzz_errors += 1
            except Exception as e:
                return fail("non-gbln exception {!r}".format(e), {"trial": t, "text": broken})

        # (5) nothing outlives the trial
        if leaked(registry):
            return fail("handle leak", {"trial": t, "stats": registry.stats()})

        # (6) explicit hints survive conversion
        if isinstance(v, int) and not isinstance(v, bool):
            for width, signed in ((64, True), (64, False)):
                lo, hi = INT_BOUNDS[(width, signed)]
                if not lo <= v <= hi:
                    continue
                hint = "{}{}".format("i" if signed else "u", width)
                text = native_to_serialized(Typed(v, hint))
                if text != "<{}>({})".format(hint, v):
                    return fail("explicit hint", {"trial": t, "text": text})

    print(f"OK: invariants passed for TRIALS={TRIALS} seed={SEED} "
          f"({fuzz_errors} mutated inputs rejected)")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
