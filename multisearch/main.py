"""Entry point: oneshot."""

import sys

USAGE = (
    "Usage: python -m multisearch.main oneshot <query> --collections a[:weight],b "
    "[--strategy relevance|roundRobin|collectionOrder] [--max N]"
)


def _pop_option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    idx = args.index(name)
    if idx + 1 >= len(args):
        print(f"Missing value for {name}")
        print(USAGE)
        sys.exit(2)
    value = args[idx + 1]
    del args[idx : idx + 2]
    return value


def main():
    mode = "oneshot"
    if len(sys.argv) > 1:
        mode = sys.argv[1].lower()

    if mode == "oneshot":
        from multisearch.interfaces.oneshot import main as run_oneshot_main

        args = sys.argv[2:]
        collections = _pop_option(args, "--collections") or ""
        strategy = _pop_option(args, "--strategy") or "relevance"
        max_raw = _pop_option(args, "--max")
        try:
            max_results = int(max_raw) if max_raw else None
        except ValueError:
            print(f"Invalid --max value: {max_raw}")
            sys.exit(2)
        if args:
            query = " ".join(args).strip()
        else:
            query = sys.stdin.read().strip()
        sys.exit(
            run_oneshot_main(
                query=query,
                collections=collections,
                strategy=strategy,
                max_results=max_results,
            )
        )

    else:
        print(f"Unknown mode: {mode}")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
