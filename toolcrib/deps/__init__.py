# Marks `toolcrib.deps` as a package so `from toolcrib.deps.services import get_ledger` resolves.
