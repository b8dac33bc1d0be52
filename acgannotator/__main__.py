import argparse
import logging
import sys

from acgannotator import stats
from acgannotator.acgbook import Locus, MalformedACGError
from acgannotator.annotator import ACGAnnotator, AnnotatorError
from acgannotator.logreader import ACGLogReader

logger = logging.getLogger("acgannotator")

'''
python3 -m acgannotator -b 10 -t 50 -p median \
        --gene-flow geneFlow.log --locus locus:10000 \
        output.trees summary.tree
'''


def locus_argument(value):
    '''ID:LENGTH'''
    name, sep, length = value.rpartition(":")
    if not sep or not name:
        raise argparse.ArgumentTypeError("expected ID:LENGTH, got " + value)
    try:
        return Locus(name, int(length))
    except ValueError:
        raise argparse.ArgumentTypeError("bad locus length in " + value)


def percent_argument(value):
    value = float(value)
    if not 0 <= value <= 100:
        raise argparse.ArgumentTypeError("percentage must be in [0, 100]")
    return value


def add_arguments(parser):
    parser.add_argument('logfile', type=str, help='ACG log file')
    parser.add_argument('outfile', type=str, nargs='?', default="summary.tree",
                        help='output summary ACG file')
    parser.add_argument('--burnin', '-b', type=percent_argument, default=10,
                        help='percentage of log to discard as burn-in')
    parser.add_argument('--threshold', '-t', type=percent_argument, default=50,
                        help='minimum posterior support (percent) for a '
                             'conversion to appear in the summary')
    parser.add_argument('--positions', '-p', choices=stats.STRATEGIES,
                        default=stats.MEAN,
                        help='summary of node heights and conversion sites')
    parser.add_argument('--gene-flow', type=str, default=None,
                        help='also write a gene flow log to this file')
    parser.add_argument('--locus', type=locus_argument, action='append',
                        default=None,
                        help='locus ID:LENGTH, repeat for several loci')
    parser.add_argument('--no-progress', help="do not show progress bars",
                        action="store_true")
    parser.add_argument(
            "-v", "--verbose", help="increase output verbosity",
            action="store_true")


def run_annotator(args):
    if args.burnin >= 100:
        raise ValueError("burn-in percentage must be below 100")
    reader = ACGLogReader(args.logfile, args.burnin / 100.0, args.locus)
    annotator = ACGAnnotator(reader.corrected_acg_count,
                             args.threshold / 100.0, args.positions,
                             progress=not args.no_progress)
    annotator.run(reader)
    logger.info("writing summary ACG to %s", args.outfile)
    with open(args.outfile, "w") as f:
        annotator.write_summary_tree(f, reader.preamble, reader.postamble)
    if args.gene_flow is not None:
        logger.info("writing gene flow log to %s", args.gene_flow)
        with open(args.gene_flow, "w") as f:
            annotator.write_gene_flow(f)
    return annotator


def main(argv=None):
    parser = argparse.ArgumentParser(prog="acgannotator",
                                     description='summarize a posterior '
                                                 'sample of ACGs')
    add_arguments(parser)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: "
                               "%(message)s")
    try:
        run_annotator(args)
    except (OSError, MalformedACGError, ValueError, AnnotatorError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
