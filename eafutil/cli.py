"""Command-Line Interface handler for eafutil."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

from .clip_generator import ClipGenerator
from .clips import ClipManifest, ClipNaming
from .config_loader import ConfigLoader, DEFAULT_CONFIG_PATH
from .eaf_io import read_eaf, write_eaf
from .exceptions import EafUtilError, ConfigurationError, FileSystemError
from .exporters import DELIMITERS, write_csv, write_json
from .importers import eaf_from_table, format_table, read_table
from .inspector import format_annotation_list, format_overview, format_tier_tree
from .log_setup import setup_logging
from .media import MEDIA_ACTIONS, format_media_list, update_media_dir, update_media_file
from .media_extractor import MediaExtractor
from .search import (
    compile_pattern, format_directory_result, format_matches, search_directory, search_document,
)
from .tokens import (
    NGRAM_SCOPES, TokenOptions, collect_tokens, count_ngrams, distribution,
    format_distribution, format_footer, format_ngrams,
)
from .utils import append_to_stem, find_files, parse_timestamp, require_dir, require_file
from .whisper import join_transcripts, read_transcript, transcript_to_eaf

logger = logging.getLogger(__name__) # Get logger for this module

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

def _timestamp(value: str) -> int:
    """argparse type for milliseconds, HH:MM:SS or HH:MM:SS.fff."""
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e

class CLIHandler:
    """Parses arguments and dispatches to the eafutil commands."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="eafutil",
            description="eafutil: inspect, search and transform ELAN annotation files (EAF).",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
        )
        parser.add_argument(
            "-c", "--config",
            default=DEFAULT_CONFIG_PATH,
            help="Path to the configuration YAML file. The default file is optional."
        )
        parser.add_argument(
            "--log-level",
            default="WARNING",
            choices=LOG_LEVELS,
            help="Set the logging level for console and file output."
        )
        subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
        subparsers.required = True

        self._add_inspect_parser(subparsers)
        self._add_tree_parser(subparsers)
        self._add_search_parser(subparsers)
        self._add_tokens_parser(subparsers)
        self._add_ngram_parser(subparsers)
        self._add_clips_parser(subparsers)
        self._add_filter_parser(subparsers)
        self._add_shift_parser(subparsers)
        self._add_media_parser(subparsers)
        self._add_json_parser(subparsers)
        self._add_eaf2csv_parser(subparsers)
        self._add_csv2eaf_parser(subparsers)
        self._add_whisper2eaf_parser(subparsers)
        self._add_transcribe_parser(subparsers)
        return parser

    def _subparser(self, subparsers, name: str, help_text: str) -> argparse.ArgumentParser:
        return subparsers.add_parser(
            name, help=help_text, description=help_text,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )

    # --- Parsers ---

    def _add_inspect_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "inspect", "Print tiers, statistics and header details of an EAF file.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("-t", "--tier", help="Tier to list with --annotations.")
        sub.add_argument("-a", "--annotations", action="store_true", help="List the annotations in --tier.")
        sub.add_argument("-v", "--verbose", action="store_true", help="Include media, properties, types, locales, languages, constraints and vocabularies.")
        sub.set_defaults(handler=self._cmd_inspect)

    def _add_tree_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "tree", "Print the tier hierarchy of an EAF file.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.set_defaults(handler=self._cmd_tree)

    def _add_search_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "search", "Search annotation values in an EAF file or a directory.")
        source = sub.add_mutually_exclusive_group(required=True)
        source.add_argument("-e", "--eaf", help="EAF file.")
        source.add_argument("-d", "--dir", help="Directory, searched recursively for .eaf files.")
        pattern = sub.add_mutually_exclusive_group(required=True)
        pattern.add_argument("-p", "--pattern", help="Literal text to find.")
        pattern.add_argument("-r", "--regex", help="Regular expression to find.")
        sub.add_argument("-i", "--ignore-case", action="store_true", help="Case-insensitive matching.")
        sub.add_argument("--context", action="store_true", help="Show the parent annotation of each match.")
        sub.add_argument("--full-path", action="store_true", help="Print full file paths.")
        sub.add_argument("-v", "--verbose", action="store_true", help="Also list files without matches and failed files.")
        sub.set_defaults(handler=self._cmd_search)

    def _add_tokens_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "tokens", "List or count the whitespace-delimited tokens of an EAF file.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("-t", "--tier", help="Only this tier. Default: all tiers.")
        sub.add_argument("--prefix", help="Characters to strip from the start of tokens.")
        sub.add_argument("--suffix", help="Characters to strip from the end of tokens.")
        sub.add_argument("-s", "--strip", action="store_true", help="Also strip common markup prefixes and suffixes.")
        sub.add_argument("-u", "--unique", action="store_true", help="List each token once.")
        sub.add_argument("--case", action="store_true", help="Ignore case.")
        sub.add_argument("--distribution", action="store_true", help="Print token counts.")
        sub.add_argument("--alpha", action="store_true", help="Sort the distribution alphabetically.")
        sub.add_argument("--reverse", action="store_true", help="Reverse the distribution order.")
        sub.set_defaults(handler=self._cmd_tokens)

    def _add_ngram_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "ngram", "Count word n-grams in an EAF file.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("-n", "--ngram", type=int, default=2, help="Words per n-gram.")
        sub.add_argument("--scope", choices=NGRAM_SCOPES, default="annotation", help="Whether n-grams may cross annotation or tier boundaries.")
        sub.add_argument("-t", "--tier", help="Only this tier. Default: all tiers.")
        sub.add_argument("--case", action="store_true", help="Ignore case.")
        sub.add_argument("--remove", action="store_true", help="Remove common punctuation and markup characters.")
        sub.add_argument("--custom", help="Further characters to remove.")
        sub.set_defaults(handler=self._cmd_ngram)

    def _add_clips_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "clips", "Cut linked media into one clip per annotation with ffmpeg.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("-t", "--tier", action="append", help="Tier to extract. Repeat for several tiers.")
        sub.add_argument("--all", action="store_true", help="Extract all tiers.")
        sub.add_argument("--annotation", help="Only extract the annotation with this ID.")
        sub.add_argument("-o", "--outdir", help="Base output directory. Default: the EAF's directory.")
        sub.add_argument("--tier-id", action="store_true", help="Add the tier ID to clip file names.")
        sub.add_argument("--id", action="store_true", help="Add the annotation ID to clip file names.")
        sub.add_argument("--value", action="store_true", help="Add the annotation value to clip file names.")
        sub.add_argument("--length", type=int, default=None, help="Maximum characters of the value in file names. Default from config.")
        sub.add_argument("--time", action="store_true", help="Add start and end times in ms to clip file names.")
        sub.add_argument("--ascii", action="store_true", help="Replace non-ASCII characters in file names.")
        sub.add_argument("--min-duration", type=int, default=0, help="Skip annotations shorter than this (ms).")
        sub.add_argument("--ffmpeg", default=None, help="Path to ffmpeg. Default from config.")
        sub.add_argument("--dryrun", action="store_true", help="Only print what would be extracted.")
        sub.add_argument("--overwrite", action="store_true", help="Replace existing clips.")
        sub.set_defaults(handler=self._cmd_clips)

    def _add_filter_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "filter", "Write an EAF excerpt with the annotations in a time window.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("--start", type=_timestamp, help="Window start: ms, HH:MM:SS or HH:MM:SS.fff.")
        sub.add_argument("--end", type=_timestamp, help="Window end: ms, HH:MM:SS or HH:MM:SS.fff.")
        sub.add_argument("-t", "--tier", help="Tier holding --annotation.")
        sub.add_argument("--annotation", help="Use the time span of this annotation as the window.")
        sub.add_argument("--media", action="store_true", help="Also cut the linked media and link the excerpts.")
        sub.add_argument("--ffmpeg", default=None, help="Path to ffmpeg. Default from config.")
        sub.add_argument("--overwrite", action="store_true", help="Replace existing output files.")
        sub.set_defaults(handler=self._cmd_filter)

    def _add_shift_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "shift", "Shift all annotations by a number of milliseconds.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("-s", "--shift", type=int, required=True, help="Shift in ms, may be negative. Negative results become 0.")
        sub.add_argument("--overwrite", action="store_true", help="Replace an existing output file.")
        sub.set_defaults(handler=self._cmd_shift)

    def _add_media_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "media", "List, add, remove or rewrite linked media.")
        source = sub.add_mutually_exclusive_group(required=True)
        source.add_argument("-e", "--eaf", help="EAF file.")
        source.add_argument("-d", "--dir", help="Directory, processed recursively (--scrub and --filename only).")
        sub.add_argument("-m", "--media", help="Media file for --add and --remove.")
        action = sub.add_mutually_exclusive_group()
        action.add_argument("--add", dest="action", action="store_const", const="add", help="Link --media.")
        action.add_argument("--remove", dest="action", action="store_const", const="remove", help="Unlink media with the file name of --media.")
        action.add_argument("--scrub", dest="action", action="store_const", const="scrub", help="Unlink all media.")
        action.add_argument("--filename", dest="action", action="store_const", const="filename", help="Reduce media paths to file names.")
        sub.add_argument("--overwrite", action="store_true", help="Replace existing output files.")
        sub.set_defaults(handler=self._cmd_media)

    def _add_json_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "json", "Export an EAF file as JSON.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("--simple", action="store_true", help="Only tiers, annotation values and times.")
        sub.add_argument("--overwrite", action="store_true", help="Replace an existing output file.")
        sub.set_defaults(handler=self._cmd_json)

    def _add_eaf2csv_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "eaf2csv", "Export all annotations as a delimited table.")
        sub.add_argument("-e", "--eaf", required=True, help="EAF file.")
        sub.add_argument("--delimiter", choices=sorted(DELIMITERS), default="tab", help="Column delimiter.")
        sub.add_argument("--overwrite", action="store_true", help="Replace an existing output file.")
        sub.set_defaults(handler=self._cmd_eaf2csv)

    def _add_csv2eaf_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "csv2eaf", "Build an EAF file from a delimited table.")
        sub.add_argument("--csv", required=True, help="CSV file with a header row.")
        sub.add_argument("--delimiter", choices=sorted(DELIMITERS), default="comma", help="Column delimiter.")
        sub.add_argument("--start", default="start", help="Start time column.")
        sub.add_argument("--end", default="end", help="End time column.")
        sub.add_argument("--values", default="values", help="Annotation value column, also the main tier name.")
        sub.add_argument("--refs", nargs="*", default=[], help="Columns to add as referring tiers.")
        sub.add_argument("--video", help="Media file to link.")
        sub.add_argument("--debug", action="store_true", help="Print the parsed table and exit.")
        sub.add_argument("--overwrite", action="store_true", help="Replace an existing output file.")
        sub.set_defaults(handler=self._cmd_csv2eaf)

    def _add_whisper2eaf_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "whisper2eaf", "Convert Whisper or whisper-timestamped JSON to EAF.")
        source = sub.add_mutually_exclusive_group(required=True)
        source.add_argument("-j", "--json", help="Whisper JSON file.")
        source.add_argument("-d", "--dir", help="Directory of Whisper JSON files.")
        sub.add_argument("--clips", help="Clip manifest written by the clips command, needed for --join.")
        sub.add_argument("--join", action="store_true", help="Join the files in --dir on the original media timeline.")
        sub.add_argument("--prefix-tiers", action="store_true", help="Prefix tier IDs with the clip manifest name.")
        sub.add_argument("-m", "--media", action="append", help="Media file to link. Repeat for several files.")
        sub.add_argument("--no-speech", type=float, default=None, help="Drop segments with no_speech_prob at or above this. Default from config.")
        sub.add_argument("--overwrite", action="store_true", help="Replace existing output files.")
        sub.set_defaults(handler=self._cmd_whisper2eaf)

    def _add_transcribe_parser(self, subparsers) -> None:
        sub = self._subparser(subparsers, "transcribe", "Transcribe a media file with Whisper into JSON and EAF.")
        sub.add_argument("-m", "--media", required=True, help="Audio or video file.")
        sub.add_argument("-o", "--outdir", help="Output directory. Default: the media file's directory.")
        sub.add_argument("--model", default=None, help="Whisper model name. Default from config.")
        sub.add_argument("--language", default=None, help="Language code. Default from config, or auto-detect.")
        sub.add_argument("--device", default=None, choices=["cuda", "cpu"], help="Processing device. Default from config.")
        sub.add_argument("--temp-dir", default=None, help="Directory for the temporary audio. Default from config.")
        sub.add_argument("--ffmpeg", default=None, help="Path to ffmpeg. Default from config.")
        sub.add_argument("--overwrite", action="store_true", help="Replace existing output files.")
        sub.set_defaults(handler=self._cmd_transcribe)

    # --- Commands ---

    def _read(self, path: str):
        require_file(path)
        return read_eaf(path)

    def _cmd_inspect(self, args: argparse.Namespace, config: dict) -> None:
        doc = self._read(args.eaf)
        if args.annotations:
            if not args.tier:
                raise EafUtilError("--annotations needs a tier, set it with --tier")
            print(format_annotation_list(doc, args.tier))
            return
        if args.tier:
            doc.require_tier(args.tier)
            print(format_annotation_list(doc, args.tier))
            return
        print(format_overview(doc, verbose=args.verbose))

    def _cmd_tree(self, args: argparse.Namespace, config: dict) -> None:
        print(format_tier_tree(self._read(args.eaf)))

    def _cmd_search(self, args: argparse.Namespace, config: dict) -> None:
        matcher = compile_pattern(args.pattern, args.regex, args.ignore_case)
        if args.eaf:
            if os.path.isdir(args.eaf):
                raise FileSystemError(f"{args.eaf} is a directory, use --dir")
            doc = self._read(args.eaf)
            matches = search_document(doc, matcher, context=args.context)
            if matches:
                print(format_matches(args.eaf, matches, args.full_path))
            print(f"Done. Found {len(matches)} matches in {1 if matches else 0} files. Searched 1 files.")
            return
        require_dir(args.dir)
        result = search_directory(args.dir, matcher, context=args.context, progress=sys.stderr.isatty())
        print(format_directory_result(result, full_path=args.full_path, verbose=args.verbose))

    def _cmd_tokens(self, args: argparse.Namespace, config: dict) -> None:
        doc = self._read(args.eaf)
        options = TokenOptions(
            prefix=args.prefix,
            suffix=args.suffix,
            strip_common=args.strip,
            unique=args.unique and not args.distribution, # counting needs every occurrence
            ignore_case=args.case,
        )
        tokens = collect_tokens(doc, args.tier, options)
        if args.distribution:
            print(format_distribution(distribution(tokens, alphabetical=args.alpha, reverse=args.reverse)))
        else:
            print(", ".join(tokens))
        print(format_footer(tokens, options))

    def _cmd_ngram(self, args: argparse.Namespace, config: dict) -> None:
        if args.ngram < 1:
            raise EafUtilError(f"--ngram must be at least 1, got {args.ngram}")
        doc = self._read(args.eaf)
        counts = count_ngrams(
            doc,
            size=args.ngram,
            scope=args.scope,
            tier_id=args.tier,
            ignore_case=args.case,
            remove_common=args.remove,
            remove_custom=args.custom,
        )
        if not counts:
            print(f"No {args.ngram}-grams found.")
            return
        print(format_ngrams(counts))
        print(f"---\n{len(counts)} distinct {args.ngram}-grams, {sum(counts.values())} in total (scope: {args.scope})")

    def _cmd_clips(self, args: argparse.Namespace, config: dict) -> None:
        require_file(args.eaf)
        if not args.tier and not args.all and not args.annotation:
            raise EafUtilError("Select tiers with --tier or --all, or an annotation with --annotation")
        naming = ClipNaming(
            tier_id=args.tier_id,
            annotation_id=args.id,
            value=args.value,
            time=args.time,
            max_length=args.length if args.length is not None else config.get('clip_value_max_length', 20),
            ascii_only=args.ascii,
        )
        generator = ClipGenerator(MediaExtractor(args.ffmpeg or config.get('ffmpeg_path')), naming)
        report = generator.generate(
            args.eaf,
            tier_ids=None if args.all else args.tier,
            annotation_id=args.annotation,
            outdir=args.outdir,
            min_duration=args.min_duration,
            dryrun=args.dryrun,
            overwrite=args.overwrite,
        )
        for tier_id, manifest in report.manifests.items():
            print(f"[{tier_id}] {len(manifest.clips)} clip(s)")
            if args.dryrun:
                for clip in manifest.clips:
                    for source, output in zip(manifest.original_media, clip.media):
                        print(f"  {clip.start:>8} - {clip.end:>8} ms  {source} (exists: {os.path.exists(source)})")
                        print(f"  {'':>22}-> {output} (exists: {os.path.exists(output)})")
            elif tier_id in report.manifest_paths:
                print(f"  Clip manifest: {report.manifest_paths[tier_id]}")
        if report.skipped:
            print(f"Skipped {report.skipped} annotation(s) without time values or below the minimum duration.")
        longest, shortest = report.longest(), report.shortest()
        if longest is not None:
            print(f"Longest clip:  {longest.duration} ms ({os.path.basename(longest.media[0]) if longest.media else '-'})")
            print(f"Shortest clip: {shortest.duration} ms ({os.path.basename(shortest.media[0]) if shortest.media else '-'})")
        if args.dryrun:
            print("Dry run, nothing was written.")

    def _cmd_filter(self, args: argparse.Namespace, config: dict) -> None:
        require_file(args.eaf)
        if args.annotation is None and (args.start is None or args.end is None):
            raise EafUtilError("Give a window with --start and --end, or an annotation with --annotation")
        generator = ClipGenerator(MediaExtractor(args.ffmpeg or config.get('ffmpeg_path')))
        report = generator.filter(
            args.eaf,
            start_ms=args.start,
            end_ms=args.end,
            tier_id=args.tier,
            annotation_id=args.annotation,
            process_media=args.media,
            overwrite=args.overwrite,
        )
        print(f"Kept {report.annotations_out} of {report.annotations_in} annotations.")
        for media_path in report.media:
            print(f"Wrote media {media_path}")
        print(f"Wrote {report.output_path}")

    def _cmd_shift(self, args: argparse.Namespace, config: dict) -> None:
        doc = self._read(args.eaf)
        clamped = doc.shift(args.shift)
        output_path = write_eaf(doc, append_to_stem(args.eaf, str(args.shift)), overwrite=args.overwrite)
        if clamped:
            print(f"{clamped} time slot(s) were set to 0.")
        print(f"Wrote {output_path}")

    def _cmd_media(self, args: argparse.Namespace, config: dict) -> None:
        action = args.action
        if action in ("add", "remove") and not args.media:
            raise EafUtilError(f"--{action} needs a media file, set it with --media")
        if args.dir:
            require_dir(args.dir)
            if action is None:
                for path in find_files(args.dir, ".eaf"):
                    print(f"[{path}]")
                    print(format_media_list(read_eaf(path)))
                return
            results = update_media_dir(args.dir, action, overwrite=args.overwrite)
            failed = 0
            for path, output_path, error in results:
                if error is None:
                    print(f"Wrote {output_path}")
                else:
                    failed += 1
                    print(f"Failed {path}: {error}")
            print(f"Done. Updated {len(results) - failed} of {len(results)} files.")
            return

        doc = self._read(args.eaf)
        if action is None:
            print(f"[{args.eaf}]")
            print(format_media_list(doc))
            return
        output_path, doc = update_media_file(args.eaf, action, args.media, overwrite=args.overwrite)
        print(f"[{output_path}]")
        print(format_media_list(doc))

    def _cmd_json(self, args: argparse.Namespace, config: dict) -> None:
        doc = self._read(args.eaf)
        output_path = os.path.splitext(args.eaf)[0] + ".json"
        print(f"Wrote {write_json(doc, output_path, simple=args.simple, overwrite=args.overwrite)}")

    def _cmd_eaf2csv(self, args: argparse.Namespace, config: dict) -> None:
        doc = self._read(args.eaf)
        output_path = os.path.splitext(args.eaf)[0] + ".csv"
        print(f"Wrote {write_csv(doc, output_path, DELIMITERS[args.delimiter], overwrite=args.overwrite)}")

    def _cmd_csv2eaf(self, args: argparse.Namespace, config: dict) -> None:
        require_file(args.csv)
        header, rows = read_table(args.csv, DELIMITERS[args.delimiter])
        if args.debug:
            print(format_table(header, rows))
            return
        output_path = os.path.splitext(args.csv)[0] + ".eaf"
        doc = eaf_from_table(
            rows, header,
            start_column=args.start,
            end_column=args.end,
            value_column=args.values,
            ref_columns=args.refs,
            media=args.video,
            relative_to=os.path.dirname(os.path.abspath(output_path)),
            author=config.get('author', 'eafutil'),
            source=args.csv,
        )
        print(f"Wrote {write_eaf(doc, output_path, overwrite=args.overwrite)}")

    def _cmd_whisper2eaf(self, args: argparse.Namespace, config: dict) -> None:
        threshold = args.no_speech if args.no_speech is not None else config.get('no_speech_threshold', 1.0)
        author = config.get('author', 'eafutil')
        if args.join and not args.clips:
            raise EafUtilError("--join needs the clip manifest, set it with --clips")
        if args.join and not args.dir:
            raise EafUtilError("--join works on a directory, set it with --dir")

        if args.json:
            require_file(args.json)
            output_path = os.path.splitext(args.json)[0] + ".eaf"
            transcript = read_transcript(args.json)
            doc = transcript_to_eaf(transcript, args.media, threshold, os.path.dirname(os.path.abspath(output_path)), author)
            print(f"Wrote {write_eaf(doc, output_path, overwrite=args.overwrite)}")
            return

        require_dir(args.dir)
        manifest_path = os.path.abspath(args.clips) if args.clips else None
        paths = [p for p in find_files(args.dir, ".json") if os.path.abspath(p) != manifest_path]
        if not paths:
            raise EafUtilError(f"No JSON files found in {args.dir}")

        if args.join:
            manifest = ClipManifest.read(args.clips)
            transcript = join_transcripts(paths, manifest)
            output_path = os.path.normpath(args.dir) + ".eaf"
            doc = transcript_to_eaf(transcript, args.media, threshold, os.path.dirname(os.path.abspath(output_path)), author)
            if args.prefix_tiers:
                doc.prefix_tier_ids(os.path.splitext(os.path.basename(args.clips))[0])
            print(f"Joined {len(paths)} file(s).")
            print(f"Wrote {write_eaf(doc, output_path, overwrite=args.overwrite)}")
            return

        failed = self._convert_transcripts(paths, args.media, threshold, author, args.overwrite)
        if failed:
            raise EafUtilError(f"{failed} of {len(paths)} file(s) could not be converted")

    def _convert_transcripts(self, paths: List[str], media: Optional[List[str]], threshold: float,
                             author: str, overwrite: bool) -> int:
        """Converts each JSON file to '<stem>.eaf', returning the number of failures."""
        failed = 0
        for path in tqdm(paths, desc="Converting", unit="file", disable=not sys.stderr.isatty(), leave=False):
            output_path = os.path.splitext(path)[0] + ".eaf"
            try:
                doc = transcript_to_eaf(read_transcript(path), media, threshold, os.path.dirname(os.path.abspath(path)), author)
                write_eaf(doc, output_path, overwrite=overwrite)
                print(f"Wrote {output_path}")
            except EafUtilError as e:
                failed += 1
                logger.error(f"Failed to convert {path}: {e}")
                print(f"Failed {path}: {e}")
        return failed

    def _cmd_transcribe(self, args: argparse.Namespace, config: dict) -> None:
        # Whisper and torch are only loaded for this command
        from .transcriber import WhisperTranscriber
        from .transcript_generator import TranscriptGenerator

        require_file(args.media)
        if args.temp_dir:
            logger.info(f"Overriding temp_dir from config with CLI argument: {args.temp_dir}")
            config['temp_dir'] = args.temp_dir
        if args.device:
            logger.info(f"Overriding device from config with CLI argument: {args.device}")
            config['device'] = args.device
        device = config.get('device', 'cuda')

        extractor = MediaExtractor(args.ffmpeg or config.get('ffmpeg_path'))
        extractor.check_available()
        transcriber = WhisperTranscriber(
            model_name=args.model or config.get('whisper_model', 'base'),
            device=device,
            fp16=config.get('whisper_fp16', True) if device == 'cuda' else False
        )
        generator = TranscriptGenerator(config, extractor, transcriber)
        output = generator.generate(
            args.media,
            output_dir=args.outdir,
            language=args.language or config.get('language'),
            overwrite=args.overwrite,
        )
        print(f"Transcribed {output.segments} segment(s).")
        print(f"Wrote {output.json_path}")
        print(f"Wrote {output.eaf_path}")

    # --- Entry point ---

    def _load_config(self, config_path: str) -> dict:
        loader = ConfigLoader()
        if config_path == DEFAULT_CONFIG_PATH and not os.path.exists(config_path):
            logger.debug(f"No {DEFAULT_CONFIG_PATH} found, using built-in defaults")
            return loader.defaults()
        return loader.load_config(config_path)

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the selected command."""
        args = self.parser.parse_args(argv)

        log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
        setup_logging(log_level=log_level)

        try:
            config = self._load_config(args.config)
        except ConfigurationError as e:
            logger.critical(f"Failed to load configuration from {args.config}: {e}")
            sys.exit(1)
        except FileNotFoundError:
            logger.critical(f"Configuration file not found: {args.config}")
            sys.exit(1)

        if config.get('log_dir'):
            setup_logging(log_level=log_level, log_dir=config['log_dir'], log_file=config.get('log_file', 'eafutil.log'))
            logger.info("Logging re-configured with settings from config file.")

        try:
            logger.info(f"Running command '{args.command}'")
            args.handler(args, config)
            sys.exit(0)
        except EafUtilError as e:
            # Errors originating from our application logic
            logger.error(f"{type(e).__name__}: {e}")
            sys.exit(1)
        except FileNotFoundError as e:
            logger.error(str(e))
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2) # Use a different exit code for unexpected crashes

def main() -> None:
    """Console script entry point."""
    CLIHandler().run()
