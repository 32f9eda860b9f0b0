from runner.jobs.common import single_source_main


def main(argv=None) -> int:
    return single_source_main("anilist", argv)


if __name__ == "__main__":
    raise SystemExit(main())
