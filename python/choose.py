#!/usr/bin/env python3
"""
Name: choose
Description: select fields or characters from each line, in any order
Author: Ryan Geary
License: gpl
"""

import sys
import os
import argparse
import re
import fileinput
import itertools
from collections import deque
from enum import Enum

__version__ = "1.1.2"

# Constants
EX_SUCCESS = 0
EX_FAILURE = 1
EX_INTERRUPTED = 130

DEFAULT_FIELD_SEPARATOR = r'\s'
DEFAULT_OUTPUT_SEPARATOR = ' '

# N, N:M, N:, :M and : where N and M may be negative.
RANGE_PATTERN = re.compile(r'^(-?\d*):(-?\d*)$')
INDEX_PATTERN = re.compile(r'^-?\d+$')

# Options whose value is the following argument. Used when moving range
# arguments out of argparse's way (see preprocess_argv).
SHORT_VALUE_OPTIONS = {'f', 'i', 'o'}
SHORT_FLAG_OPTIONS = {'c', 'd', 'h', 'n', 'x'}
LONG_VALUE_OPTIONS = {'--field-separator', '--input', '--output-field-separator'}
LONG_FLAG_OPTIONS = {'--character-wise', '--debug', '--exclusive', '--help', '--non-greedy', '--version'}

_MISSING = object()

class Strategy(Enum):
    FORWARD = 0
    REVERSE = 1
    NEGATIVE = 2

class Peekable:
    """
    Wraps an iterator with one item of lookahead.

    A Peekable is truthy while items remain, so "is this the last token"
    is answered the same way for a live token stream and for a buffer.
    """
    def __init__(self, iterable):
        self._iterator = iter(iterable)
        self._peeked = _MISSING

    def __iter__(self):
        return self

    def __next__(self):
        if self._peeked is not _MISSING:
            item, self._peeked = self._peeked, _MISSING
            return item
        return next(self._iterator)

    def __bool__(self):
        if self._peeked is _MISSING:
            self._peeked = next(self._iterator, _MISSING)
        return self._peeked is not _MISSING

    def peek(self, default=_MISSING):
        """Returns the next item without consuming it."""
        if self:
            return self._peeked
        if default is _MISSING:
            raise StopIteration
        return default

def with_lookahead(tokens):
    """Yields (token, has_more) pairs, has_more being False only for the last token."""
    tokens = Peekable(tokens)
    for token in tokens:
        yield token, bool(tokens)

class Choice:
    """
    One user-supplied range, e.g. '2', '1:3', '-2:' or '3:1'.

    start and end are the signed bounds as typed; end is None when the
    range is open ("through the last token"). The negative_index and
    reversed flags, and from them the selection strategy, are computed
    once here and never change, so one Choice serves every input line.
    With exclusive set, the higher of the two bounds is left out, like the
    stop of a slice: end for an ascending range, start for a descending one.
    """
    __slots__ = ('_start', '_end', '_exclusive', '_negative_index', '_reversed', '_strategy')

    def __init__(self, start: int, end, exclusive: bool = False):
        self._start = start
        self._end = end
        self._exclusive = exclusive
        self._negative_index = start < 0 or (end is not None and end < 0)
        self._reversed = end is not None and end < start

        if self._reversed and not self._negative_index:
            self._strategy = Strategy.REVERSE
        elif self._negative_index:
            # Negative bounds need the token count, in either direction.
            self._strategy = Strategy.NEGATIVE
        else:
            self._strategy = Strategy.FORWARD

    @property
    def start(self) -> int:
        return self._start

    @property
    def end(self):
        return self._end

    @property
    def exclusive(self) -> bool:
        return self._exclusive

    @property
    def negative_index(self) -> bool:
        return self._negative_index

    @property
    def reversed(self) -> bool:
        return self._reversed

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    def __repr__(self):
        end = '' if self._end is None else self._end
        flags = ' exclusive' if self._exclusive else ''
        return (f"<Choice {self._start}:{end} {self._strategy.name.lower()}"
                f" negative_index={self._negative_index} reversed={self._reversed}{flags}>")

    def __eq__(self, other):
        if not isinstance(other, Choice):
            return NotImplemented
        return (self._start, self._end, self._exclusive) == (other._start, other._end, other._exclusive)

    def __hash__(self):
        return hash((self._start, self._end, self._exclusive))

    def select(self, tokens):
        """
        Picks this range out of one line's tokens.

        Returns an iterator of (token, has_more) pairs in emission order.
        Ranges that fall partly or wholly outside the line give fewer
        tokens, or none; they never raise.
        """
        if self._strategy is Strategy.REVERSE:
            chosen = self._select_reverse(tokens)
        elif self._strategy is Strategy.NEGATIVE:
            chosen = self._select_negative(tokens)
        else:
            chosen = self._select_forward(tokens)
        return with_lookahead(chosen)

    def _select_forward(self, tokens):
        # islice skips the first `start` tokens without keeping them.
        if self._end is None:
            return itertools.islice(tokens, self._start, None)
        stop = self._end if self._exclusive else self._end + 1
        return itertools.islice(tokens, self._start, stop)

    def _select_reverse(self, tokens):
        window = self._start - self._end
        if not self._exclusive:
            window += 1
        tokens = itertools.islice(tokens, self._end, None)
        # Only the window is buffered, never the rest of the line.
        buffer = deque(itertools.islice(tokens, window), maxlen=window)
        return reversed(buffer)

    def _select_negative(self, tokens):
        buffer = list(tokens)
        length = len(buffer)
        if not length:
            return iter(())

        last = length - 1
        start = self._resolve(self._start, length)
        end = last if self._end is None else self._resolve(self._end, length)
        # An open end is never shortened.
        exclusive = self._exclusive and self._end is not None

        if end > start:
            stop = min(end - 1 if exclusive else end, last)
            indices = range(start, stop + 1)
        elif self._start < 0:
            first = min(start, last)
            if exclusive:
                first -= 1
            indices = range(first, end - 1, -1)
        else:
            # Only the end was negative and it resolved at or before start.
            indices = range(0)
        return (buffer[i] for i in indices)

    @staticmethod
    def _resolve(index: int, length: int) -> int:
        """Turns an end-relative index into an absolute one, saturating at 0."""
        if index >= 0:
            return index
        return max(length + index, 0)

def parse_range(text: str) -> tuple:
    """
    Parses a range argument into a (start, end) pair; end is None for an
    open range. Used as an argparse type, so failures are ArgumentTypeError.
    """
    match = RANGE_PATTERN.match(text)
    if match:
        start_str, end_str = match.groups()
        try:
            start = int(start_str) if start_str else 0
            end = int(end_str) if end_str else None
        except ValueError:
            # A lone '-' on either side of the colon.
            raise argparse.ArgumentTypeError(f"failed to parse choice argument: '{text}'")
        return start, end

    if INDEX_PATTERN.match(text):
        index = int(text)
        return index, index

    raise argparse.ArgumentTypeError(f"failed to parse choice argument: '{text}'")

def split_fields(line: str, separator, non_greedy: bool = False):
    """
    Lazily splits a line on a compiled separator pattern.

    Empty fields (from adjacent separators or a separator at either end of
    the line) are dropped unless non_greedy is set.
    """
    position = 0
    for match in separator.finditer(line):
        field = line[position:match.start()]
        position = match.end()
        if field or non_greedy:
            yield field

    field = line[position:]
    if field or non_greedy:
        yield field

def split_chars(line: str):
    """Each character of the line is one token."""
    return iter(line)

class ChoiceWriter:
    """Writes selected tokens, placing the output separator between them."""
    def __init__(self, stream, separator: str = DEFAULT_OUTPUT_SEPARATOR):
        self.stream = stream
        self.separator = separator

    def write_choice(self, token: str, has_more: bool):
        self.stream.write(token)
        # An empty field adds nothing, not even a separator.
        if token and has_more:
            self.stream.write(self.separator)

    def write_separator(self):
        self.stream.write(self.separator)

    def end_line(self):
        self.stream.write('\n')

    def flush(self):
        self.stream.flush()

class ChooseProcessor:
    """Applies every choice to every input line."""
    def __init__(self, args, output=None):
        self.args = args
        self.choices = [Choice(start, end, args.exclusive) for start, end in args.choices]
        # Raises re.error for a bad pattern; main() reports it.
        self.separator = re.compile(args.field_separator)
        self.writer = ChoiceWriter(output if output is not None else sys.stdout,
                                   args.output_field_separator)

    def tokenize(self, line: str):
        """Returns a fresh token iterator for the line."""
        if self.args.character_wise:
            return split_chars(line)
        return split_fields(line, self.separator, self.args.non_greedy)

    def process_stream(self, stream):
        """Processes an entire input stream line by line."""
        for line in stream:
            self._process_line(line.rstrip('\n'))
        self.writer.flush()

    def _process_line(self, line: str):
        choices = Peekable(self.choices)
        for choice in choices:
            for token, has_more in choice.select(self.tokenize(line)):
                self.writer.write_choice(token, has_more)
            if choices:
                self.writer.write_separator()
        self.writer.end_line()

    def debug_lines(self) -> list:
        """Describes the effective configuration, one line per item."""
        mode = 'character-wise' if self.args.character_wise else 'field-wise'
        greed = 'non-greedy' if self.args.non_greedy else 'greedy'
        lines = [
            f"mode {mode}, {greed}, exclusive={self.args.exclusive}",
            f"field separator {self.separator.pattern!r}",
            f"output separator {self.writer.separator!r}",
            f"input {self.args.input or '<stdin>'}",
        ]
        lines.extend(repr(choice) for choice in self.choices)
        return lines

def takes_value(arg: str) -> bool:
    """True when arg is an option whose value is the next argument."""
    if arg.startswith('--'):
        # argparse accepts any unique prefix of a long option.
        matches = [option for option in LONG_VALUE_OPTIONS | LONG_FLAG_OPTIONS if option.startswith(arg)]
        return len(matches) == 1 and matches[0] in LONG_VALUE_OPTIONS
    if not arg.startswith('-'):
        return False

    # A short option cluster such as -f or -nf. A value attached to the
    # option itself (-f:) does not consume the next argument.
    letters = arg[1:]
    for i, letter in enumerate(letters):
        if letter in SHORT_VALUE_OPTIONS:
            return i == len(letters) - 1
        if letter not in SHORT_FLAG_OPTIONS:
            return False
    return False

def preprocess_argv(args_list: list) -> list:
    """
    Moves range arguments behind a '--' so argparse does not read
    negative ranges such as '-2:' or '-3:-1' as options.
    """
    options = []
    ranges = []
    i = 0
    while i < len(args_list):
        arg = args_list[i]
        if arg == '--':
            ranges.extend(args_list[i + 1:])
            break
        if takes_value(arg):
            if i + 1 < len(args_list) and args_list[i + 1].startswith('-'):
                # Attach values such as -3:-1 so argparse does not read them as options.
                joiner = '=' if arg.startswith('--') else ''
                options.append(arg + joiner + args_list[i + 1])
            else:
                options.extend(args_list[i:i + 2])
            i += 2
            continue
        if arg == '-' or not arg.startswith('-') or RANGE_PATTERN.match(arg) or INDEX_PATTERN.match(arg):
            ranges.append(arg)
        else:
            options.append(arg)
        i += 1

    return options + ['--'] + ranges

def parse_args(argv: list):
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(
        prog='choose',
        description="Select fields or characters from each line of input, "
                    "in any order and with negative (end-relative) indices.",
        usage="%(prog)s [-cdnx] [-f separator] [-o separator] [-i file] choice ..."
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument('-c', '--character-wise', action='store_true',
                        help='choose individual characters instead of fields')
    parser.add_argument('-d', '--debug', action='store_true',
                        help='print the parsed configuration to stderr')
    parser.add_argument('-x', '--exclusive', action='store_true',
                        help='use exclusive ranges, like slices in most programming languages')
    parser.add_argument('-f', '--field-separator', default=DEFAULT_FIELD_SEPARATOR,
                        help='regular expression separating fields (default: whitespace)')
    parser.add_argument('-i', '--input',
                        help='input file (default: stdin)')
    parser.add_argument('-n', '--non-greedy', action='store_true',
                        help='keep empty fields between adjacent field separators')
    parser.add_argument('-o', '--output-field-separator', default=DEFAULT_OUTPUT_SEPARATOR,
                        help='string written between chosen fields (default: a space)')
    parser.add_argument(
        'choices',
        metavar='choice',
        nargs='+',
        type=parse_range,
        help="fields to print: N, N:M, N:, :M or ':'; negative values count from the end"
    )

    return parser.parse_args(preprocess_argv(argv))

def main():
    """Parses arguments and prints the chosen fields of every input line."""
    program_name = os.path.basename(sys.argv[0])
    args = parse_args(sys.argv[1:])

    try:
        processor = ChooseProcessor(args)
    except re.error as e:
        print(f"{program_name}: invalid field separator regex '{args.field_separator}': {e}", file=sys.stderr)
        sys.exit(EX_FAILURE)

    if args.debug:
        for line in processor.debug_lines():
            print(f"{program_name}: debug: {line}", file=sys.stderr)

    if args.input and os.path.isdir(args.input):
        print(f"{program_name}: '{args.input}' is a directory", file=sys.stderr)
        sys.exit(EX_FAILURE)

    try:
        with fileinput.input(files=(args.input,) if args.input else ('-',),
                             openhook=fileinput.hook_encoded('utf-8')) as stream:
            processor.process_stream(stream)
    except FileNotFoundError as e:
        print(f"{program_name}: failed to open '{e.filename}': {e.strerror}", file=sys.stderr)
        sys.exit(EX_FAILURE)
    except BrokenPipeError:
        sys.stderr.close() # Silence errors on broken pipe
        sys.exit(EX_FAILURE)
    except KeyboardInterrupt:
        sys.exit(EX_INTERRUPTED)
    except Exception as e:
        print(f"{program_name}: an unexpected error occurred: {e}", file=sys.stderr)
        sys.exit(EX_FAILURE)

    sys.exit(EX_SUCCESS)

if __name__ == "__main__":
    main()
