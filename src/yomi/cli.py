from __future__ import annotations

import argparse
import json
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from .book_io import (
    PROCESSING_ENHANCED,
    PROCESSING_LOCAL,
    analysis_payload,
    book_path_for,
    build_book_payload,
    write_book,
)
from .config import MergeOptions, ServiceConfig
from .dictionary import DictionaryLookupError, JMDictionary
from .enrich import MODE_ENHANCED, MODE_LOCAL, TokenEnricher
from .llm import LanguageModelError, LanguageModelUnavailableError, OllamaClient
from .logging_utils import set_debug_logging
from .nlp import NLPBackend, NLPBackendUnavailableError
from .pipeline import (
    PipelineError,
    PlaybackSchedule,
    SentenceAnalysis,
    SentencePipeline,
    split_into_sentences,
)
from .timing import (
    TimingUnit,
    TokenTiming,
    deserialize_timing_units,
    parse_textgrid,
    serialize_timing_units,
    serialize_token_timings,
)
from .tools import get_unidic_dicdir
from .tts import VoiceVoxClient, VoiceVoxError, VoiceVoxUnavailableError


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("yomi")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"yomi {__version__}",
    )


def _add_analysis_flags(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--local",
        action="store_true",
        help="Skip the language model and enrich from the local dictionary only.",
    )
    ap.add_argument(
        "--jmdict",
        help="Path to a jmdict-simplified JSON export (default: $YOMI_JMDICT_PATH).",
    )
    ap.add_argument(
        "--ollama-host",
        help="Ollama host (default: $YOMI_OLLAMA_HOST or 127.0.0.1).",
    )
    ap.add_argument(
        "--ollama-port",
        type=int,
        help="Ollama port (default: $YOMI_OLLAMA_PORT or 11434).",
    )
    ap.add_argument(
        "--model",
        help="Ollama model name (default: $YOMI_OLLAMA_MODEL or gemma3:12b).",
    )
    _add_merge_flags(ap)


def _add_merge_flags(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--compound",
        action="store_true",
        help="Merge verb + auxiliary-verb compounds such as 書き込む before the verb pass.",
    )
    ap.add_argument(
        "--no-auxiliary-verbs",
        action="store_true",
        help="Do not merge auxiliary verbs into the preceding verb.",
    )
    ap.add_argument(
        "--no-verb-particles",
        action="store_true",
        help="Only merge whitelisted particles tagged as connective or case particles.",
    )
    ap.add_argument(
        "--no-verb-suffixes",
        action="store_true",
        help="Disable the verb-suffix rule; non-independent verbs still merge.",
    )
    ap.add_argument(
        "--no-inflections",
        action="store_true",
        help="Do not merge inflection endings or auxiliary patterns.",
    )
    ap.add_argument(
        "--no-punctuation",
        action="store_true",
        help="Keep consecutive punctuation marks as separate tokens.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Print debug logs for analysis, enrichment and speech requests.",
    )


def _add_speech_flags(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--voicevox-url",
        help="VoiceVox engine URL (default: $YOMI_VOICEVOX_URL or http://127.0.0.1:50021).",
    )
    ap.add_argument(
        "--speaker",
        type=int,
        help="VoiceVox speaker ID (default: $YOMI_VOICEVOX_SPEAKER or 1).",
    )
    ap.add_argument(
        "--speed",
        type=float,
        help="VoiceVox speedScale override.",
    )


def build_parse_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Segment, merge and translate a Japanese sentence.",
    )
    _add_version_flag(ap)
    ap.add_argument("text", nargs="+", help="Japanese text to analyze.")
    ap.add_argument(
        "--split",
        action="store_true",
        help="Split the text on 。 and analyze each sentence with its neighbours as context.",
    )
    ap.add_argument(
        "--json",
        action="store_true",
        help="Print the analysis as JSON instead of a table.",
    )
    _add_analysis_flags(ap)
    return ap


def build_book_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Analyze a .txt file line by line and save the result as a .book file.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Path to a UTF-8 .txt file.")
    ap.add_argument(
        "-o",
        "--output",
        help="Output .book path (default: <input>.book next to the input).",
    )
    ap.add_argument(
        "--name",
        help="Book name stored in the metadata (default: input file name).",
    )
    ap.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=1,
        help="Number of lines processed concurrently (default: %(default)s).",
    )
    ap.add_argument(
        "--no-context",
        action="store_true",
        help="Do not pass neighbouring lines to the language model.",
    )
    ap.add_argument(
        "--speak",
        action="store_true",
        help="Also synthesize every processed line with VoiceVox and store its token timings.",
    )
    _add_speech_flags(ap)
    _add_analysis_flags(ap)
    return ap


def build_speak_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Synthesize a sentence with VoiceVox and align token timings to the audio.",
    )
    _add_version_flag(ap)
    ap.add_argument("text", nargs="+", help="Japanese text to speak.")
    ap.add_argument(
        "-o",
        "--output",
        help="Write the synthesized WAV to this path.",
    )
    ap.add_argument(
        "--schedule",
        help="Write the token playback schedule as JSON to this path.",
    )
    _add_speech_flags(ap)
    _add_analysis_flags(ap)
    return ap


def build_align_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Align stored timing units (a schedule JSON or a TextGrid) onto the tokens of a sentence.",
    )
    _add_version_flag(ap)
    ap.add_argument("text", nargs="+", help="Japanese text the units were produced for.")
    ap.add_argument(
        "--units",
        required=True,
        help="Schedule JSON written by 'yomi speak --schedule', a JSON list of units, or a .TextGrid file.",
    )
    ap.add_argument(
        "--tier",
        help="TextGrid interval tier to read (default: the first interval tier).",
    )
    ap.add_argument(
        "--duration",
        type=float,
        help="Total audio duration in seconds (default: stored duration or last unit end).",
    )
    ap.add_argument(
        "--json",
        action="store_true",
        help="Print the schedule as JSON instead of a table.",
    )
    _add_merge_flags(ap)
    return ap


def build_tools_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="yomi helper utilities")
    _add_version_flag(ap)
    subparsers = ap.add_subparsers(dest="tool_cmd")

    subparsers.add_parser(
        "unidic-status",
        help="Show the currently detected UniDic dictionary path.",
    )
    models = subparsers.add_parser(
        "models",
        help="List the models available on the Ollama server.",
    )
    models.add_argument("--ollama-host", help="Ollama host.")
    models.add_argument("--ollama-port", type=int, help="Ollama port.")
    voicevox = subparsers.add_parser(
        "voicevox-status",
        help="Check whether the VoiceVox engine answers.",
    )
    voicevox.add_argument("--voicevox-url", help="VoiceVox engine URL.")
    return ap


def _service_config(args: argparse.Namespace) -> ServiceConfig:
    config = ServiceConfig.from_env()
    if getattr(args, "ollama_host", None):
        config.ollama_host = args.ollama_host
    if getattr(args, "ollama_port", None):
        config.ollama_port = args.ollama_port
    if getattr(args, "model", None):
        config.ollama_model = args.model
    if getattr(args, "voicevox_url", None):
        config.voicevox_url = args.voicevox_url
    if getattr(args, "speaker", None) is not None:
        config.speaker = args.speaker
    if getattr(args, "jmdict", None):
        config.jmdict_path = Path(args.jmdict).expanduser()
    return config


def _merge_options(args: argparse.Namespace) -> MergeOptions:
    return MergeOptions(
        merge_auxiliary_verbs=not args.no_auxiliary_verbs,
        merge_verb_particles=not args.no_verb_particles,
        merge_verb_suffixes=not args.no_verb_suffixes,
        merge_all_inflections=not args.no_inflections,
        merge_punctuation=not args.no_punctuation,
        use_compound_detection=args.compound,
    )


def _load_analyzer() -> NLPBackend:
    try:
        return NLPBackend()
    except NLPBackendUnavailableError as exc:
        raise SystemExit(str(exc)) from exc


def _build_pipeline(
    args: argparse.Namespace,
    config: ServiceConfig,
    *,
    speech: VoiceVoxClient | None = None,
) -> SentencePipeline:
    analyzer = _load_analyzer()

    dictionary = None
    if config.jmdict_path is not None:
        try:
            dictionary = JMDictionary.from_json(config.jmdict_path)
        except DictionaryLookupError as exc:
            raise SystemExit(str(exc)) from exc

    translator = None
    if not args.local:
        translator = OllamaClient(
            config.ollama_url,
            config.ollama_model,
            config.ollama_timeout,
        )
    return SentencePipeline(
        analyzer,
        options=_merge_options(args),
        enricher=TokenEnricher(dictionary=dictionary, translator=translator),
        speech=speech,
    )


def _joined_text(parts: list[str]) -> str:
    text = " ".join(parts).strip()
    if not text:
        raise SystemExit("No text provided for analysis.")
    return text


def _print_analysis(console: Console, analysis) -> None:
    table = Table(title=analysis.text, show_lines=False)
    table.add_column("Surface", no_wrap=True)
    table.add_column("Reading", no_wrap=True)
    table.add_column("Category")
    table.add_column("Detail")
    table.add_column("Translation")
    table.add_column("Role")
    for enriched in analysis.tokens:
        token = enriched.token
        detail = token.detail
        if token.inflection_count:
            detail = f"{detail} ({token.inflection_count})"
        table.add_row(
            token.surface,
            token.reading,
            token.category,
            detail,
            enriched.translation,
            enriched.grammatical_role,
        )
    console.print(table)
    console.print(f"[bold]Translation:[/bold] {analysis.full_translation}")
    summary = analysis.summary()
    console.print(
        f"[dim]{analysis.status} · {summary['totalTokens']} tokens, "
        f"{summary['words']} words, {summary['characters']} characters[/dim]"
    )
    for warning in analysis.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def _run_parse(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    text = _joined_text(args.text)
    config = _service_config(args)
    pipeline = _build_pipeline(args, config)
    mode = MODE_LOCAL if args.local else MODE_ENHANCED
    sentences = split_into_sentences(text) if args.split else [text]

    analyses = []
    for index, sentence in enumerate(sentences):
        try:
            analyses.append(
                pipeline.process(
                    sentence,
                    sentence_index=index,
                    mode=mode,
                    previous_sentence=sentences[index - 1] if index > 0 else None,
                    next_sentence=sentences[index + 1] if index + 1 < len(sentences) else None,
                )
            )
        except PipelineError as exc:
            raise SystemExit(str(exc)) from exc

    if args.json:
        payload = [analysis_payload(analysis) for analysis in analyses]
        print(json.dumps(payload if args.split else payload[0], ensure_ascii=False, indent=2))
        return 0

    console = Console()
    for analysis in analyses:
        _print_analysis(console, analysis)
    return 0


def _read_book_lines(path: Path) -> list[str]:
    content = path.read_text(encoding="utf-8")
    return [line.strip() for line in content.splitlines() if line.strip()]


def _speak_book_lines(
    args: argparse.Namespace,
    config: ServiceConfig,
    pipeline: SentencePipeline,
    processed: dict[int, SentenceAnalysis],
    console: Console,
) -> dict[int, list[TokenTiming]]:
    speech = VoiceVoxClient(
        config.voicevox_url,
        speaker_id=config.speaker,
        speed_scale=args.speed,
    )
    pipeline.speech = speech
    timings: dict[int, list[TokenTiming]] = {}
    try:
        for index in sorted(processed):
            analysis = processed[index]
            try:
                schedule = pipeline.playback(analysis.text, tokens=analysis.merged_tokens)
            except VoiceVoxUnavailableError as exc:
                raise SystemExit(f"VoiceVox engine unavailable: {exc}") from exc
            except VoiceVoxError as exc:
                console.print(f"[yellow]No timings for line {index + 1}:[/yellow] {exc}")
                continue
            timings[index] = schedule.timings
    finally:
        speech.close()
        pipeline.speech = None
    return timings


def _run_book(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    input_path = Path(args.input_path).expanduser()
    if not input_path.is_file():
        raise FileNotFoundError(f"Input path not found: {input_path}")
    lines = _read_book_lines(input_path)
    if not lines:
        raise SystemExit(f"No text lines found in {input_path}")

    config = _service_config(args)
    pipeline = _build_pipeline(args, config)
    mode = MODE_LOCAL if args.local else MODE_ENHANCED

    console = Console(stderr=True)
    progress = Progress(
        TextColumn("{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=False,
        disable=not console.is_terminal,
    )
    with progress:
        task_id = progress.add_task(input_path.name, total=len(lines))

        def _advance(completed: int, total: int) -> None:
            progress.update(task_id, completed=completed, total=total)

        processed, failures = pipeline.process_lines(
            lines,
            mode=mode,
            jobs=max(1, args.jobs),
            with_context=not args.local and not args.no_context,
            progress_callback=_advance,
        )

    timings: dict[int, list[TokenTiming]] = {}
    if args.speak:
        timings = _speak_book_lines(args, config, pipeline, processed, console)

    payload = build_book_payload(
        original_filename=input_path.name,
        bookname=args.name,
        lines=lines,
        processed=processed,
        options=pipeline.options,
        processing_type=PROCESSING_LOCAL if args.local else PROCESSING_ENHANCED,
        timings=timings,
    )
    output_path = Path(args.output).expanduser() if args.output else book_path_for(input_path)
    write_book(output_path, payload)

    degraded = sum(1 for analysis in processed.values() if analysis.degraded)
    console.print(f"Processed {len(processed)}/{len(lines)} lines -> {output_path}")
    if degraded:
        console.print(f"[yellow]{degraded} line(s) fell back to dictionary-only enrichment.[/yellow]")
    for failure in failures:
        console.print(f"[red]Skipped line {failure.index + 1}:[/red] {failure.error}")
    return 0


def _print_schedule(console: Console, schedule: PlaybackSchedule) -> None:
    table = Table(title=f"{schedule.text} ({schedule.duration:.2f}s)")
    table.add_column("#", justify="right")
    table.add_column("Token", no_wrap=True)
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    for timing in schedule.timings:
        table.add_row(
            str(timing.token_index),
            schedule.tokens[timing.token_index].surface,
            f"{timing.start_time:.3f}",
            f"{timing.end_time:.3f}",
        )
    console.print(table)
    if schedule.used_fallback:
        console.print("[yellow]No timing units available; timings are evenly distributed.[/yellow]")


def _schedule_payload(schedule: PlaybackSchedule) -> dict[str, object]:
    return {
        "text": schedule.text,
        "duration": schedule.duration,
        "tokens": [token.surface for token in schedule.tokens],
        "timings": serialize_token_timings(schedule.timings),
        "units": serialize_timing_units(schedule.units),
        "usedFallback": schedule.used_fallback,
    }


def _run_speak(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    text = _joined_text(args.text)
    config = _service_config(args)
    speech = VoiceVoxClient(
        config.voicevox_url,
        speaker_id=config.speaker,
        speed_scale=args.speed,
    )
    pipeline = _build_pipeline(args, config, speech=speech)
    try:
        schedule = pipeline.playback(text)
    except VoiceVoxUnavailableError as exc:
        raise SystemExit(f"VoiceVox engine unavailable: {exc}") from exc
    except (VoiceVoxError, PipelineError) as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        speech.close()

    console = Console()
    _print_schedule(console, schedule)

    if args.output:
        output_path = Path(args.output).expanduser()
        output_path.write_bytes(schedule.audio)
        console.print(f"Audio written to {output_path}")
    if args.schedule:
        schedule_path = Path(args.schedule).expanduser()
        schedule_path.write_text(
            json.dumps(_schedule_payload(schedule), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        console.print(f"Schedule written to {schedule_path}")
    return 0


def _load_timing_units(path: Path, tier: str | None) -> tuple[list[TimingUnit], float | None]:
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".textgrid":
        return parse_textgrid(content, tier=tier), None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid timing JSON in {path}: {exc}") from exc
    duration = None
    if isinstance(data, dict):
        stored = data.get("duration")
        if isinstance(stored, (int, float)) and not isinstance(stored, bool):
            duration = float(stored)
        data = data.get("units", [])
    if not isinstance(data, list):
        raise SystemExit(f"No timing units found in {path}")
    return deserialize_timing_units(data), duration


def _run_align(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    text = _joined_text(args.text)
    units_path = Path(args.units).expanduser()
    if not units_path.is_file():
        raise FileNotFoundError(f"Timing file not found: {units_path}")
    units, stored_duration = _load_timing_units(units_path, args.tier)
    duration = args.duration if args.duration is not None else stored_duration

    pipeline = SentencePipeline(_load_analyzer(), options=_merge_options(args))
    try:
        schedule = pipeline.align(text, units, duration)
    except PipelineError as exc:
        raise SystemExit(str(exc)) from exc

    if args.json:
        print(json.dumps(_schedule_payload(schedule), ensure_ascii=False, indent=2))
        return 0
    _print_schedule(Console(), schedule)
    return 0


def _run_tools(args: argparse.Namespace) -> int:
    if not args.tool_cmd:
        raise SystemExit("A tools subcommand is required. Use --help for options.")

    if args.tool_cmd == "unidic-status":
        dicdir = get_unidic_dicdir()
        if dicdir is not None:
            print(f"UniDic path: {dicdir}")
        else:
            print("No UniDic dictionary detected. Install 'unidic-lite' or set YOMI_UNIDIC_DIR.")
        return 0

    config = _service_config(args)
    if args.tool_cmd == "models":
        client = OllamaClient(config.ollama_url, config.ollama_model, config.ollama_timeout)
        try:
            models = client.list_models()
        except (LanguageModelError, LanguageModelUnavailableError) as exc:
            raise SystemExit(str(exc)) from exc
        finally:
            client.close()
        for name in models:
            marker = "*" if name == config.ollama_model else " "
            print(f"{marker} {name}")
        return 0

    if args.tool_cmd == "voicevox-status":
        client = VoiceVoxClient(config.voicevox_url)
        try:
            ready = client.is_ready()
        finally:
            client.close()
        print(f"VoiceVox at {client.base_url}: {'ready' if ready else 'unreachable'}")
        return 0 if ready else 1

    raise SystemExit(f"Unknown tools subcommand: {args.tool_cmd}")


_COMMANDS = {
    "parse": (build_parse_parser, _run_parse),
    "book": (build_book_parser, _run_book),
    "speak": (build_speak_parser, _run_speak),
    "align": (build_align_parser, _run_align),
    "tools": (build_tools_parser, _run_tools),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _COMMANDS:
        build, run = _COMMANDS[argv[0]]
        args = build().parse_args(argv[1:])
        return run(args)

    if argv and argv[0] in {"-v", "--version"}:
        print(f"yomi {__version__}")
        return 0

    print("usage: yomi {parse,book,speak,align,tools} ...")
    print("Run 'yomi <command> --help' for command options.")
    return 0 if not argv else 2


if __name__ == "__main__":
    raise SystemExit(main())
