import math
import unittest

from acgannotator import cladesystem, stats, treeSequence
from acgannotator.acgbook import Conversion, ConversionGraph, Locus


def frames(count=20, sample_size=5, seed=7):
    return treeSequence.simulate_clonal_frames(sample_size, count, seed,
                                               Locus(length=1000))


def simple_acg(cf, conversions=()):
    acg = ConversionGraph.from_string(cf, [Locus(length=100)])
    for node1, height1, node2, height2, start, end in conversions:
        acg.add_conversion(Conversion(acg.loci[0], node1, height1, node2,
                                      height2, start, end))
    return acg


CF_A = "((0:1.0,1:1.0)3:1.0,2:2.0)4:0.0"
CF_B = "((0:1.0,2:1.0)3:1.0,1:2.0)4:0.0"


class TestTreeSeq(unittest.TestCase):

    def test_ts_to_acg(self):
        acgs = frames(count=3, sample_size=6)
        self.assertEqual(len(acgs), 3)
        for acg in acgs:
            acg.verify()
            self.assertEqual(acg.leaf_count, 6)
            self.assertEqual(acg.node_count, 11)
            self.assertEqual(sorted(n.index for n in acg.tree.leaves()),
                             list(range(6)))
            self.assertEqual(acg.tree.clades()[acg.tree.root], 2 ** 6 - 1)
            self.assertEqual(acg.conversion_count, 0)


class TestCladeSystem(unittest.TestCase):

    def test_clade_label(self):
        self.assertEqual(cladesystem.clade_label(0b1011), "0_1_3")
        self.assertEqual(cladesystem.clade_label(1 << 12), "12")

    def test_credibilities(self):
        acgs = frames()
        system = cladesystem.CladeSystem()
        for acg in acgs:
            system.add(acg)
        system.calculate_clade_credibilities(len(acgs))
        root_bits = 2 ** 5 - 1
        self.assertEqual(system.clade_credibility(root_bits), 1.0)
        for i in range(5):
            self.assertEqual(system.clade_credibility(1 << i), 1.0)
        internal = [r for r in system.clade_map.values()
                    if bin(r.bits).count("1") > 1]
        self.assertEqual(sum(r.count for r in internal), len(acgs) * 4)
        for record in system.clade_map.values():
            self.assertTrue(0 < record.credibility <= 1.0)

    def test_log_clade_credibility(self):
        system = cladesystem.CladeSystem()
        for _ in range(3):
            system.add(simple_acg(CF_A))
        system.add(simple_acg(CF_B))
        system.calculate_clade_credibilities(4)
        self.assertAlmostEqual(system.log_clade_credibility(simple_acg(CF_A)),
                               math.log(0.75))
        self.assertAlmostEqual(system.log_clade_credibility(simple_acg(CF_B)),
                               math.log(0.25))
        unseen = simple_acg("((1:1.0,2:1.0)3:1.0,0:2.0)4:0.0")
        self.assertEqual(system.log_clade_credibility(unseen), -math.inf)

    def test_include_tips(self):
        system = cladesystem.CladeSystem()
        system.add(simple_acg(CF_A), include_tips=False)
        self.assertEqual(sorted(system.clade_map), [0b011, 0b111])

    def test_collect_attributes_registered_only(self):
        system = cladesystem.CladeSystem()
        system.register_clades(simple_acg(CF_A))
        self.assertTrue(all(r.count == 0 for r in system.clade_map.values()))
        system.collect_attributes(simple_acg(CF_A), ["height"])
        system.collect_attributes(
            simple_acg("((0:0.5,1:0.5)3:2.5,2:3.0)4:0.0"), ["height"])
        system.collect_attributes(simple_acg(CF_B), ["height"])
        self.assertEqual(system[0b011].attributes["height"], [1.0, 0.5])
        self.assertEqual(system[0b111].attributes["height"], [2.0, 3.0, 2.0])
        self.assertEqual(system[0b111].count, 3)
        self.assertNotIn(0b101, system)

    def test_apply_to_clades_children_first(self):
        system = cladesystem.CladeSystem()
        acg = simple_acg(CF_A)
        system.add(acg)
        visited = []
        clades = []

        def visit(node, clade):
            for child in node.children:
                self.assertIn(child, visited)
            self.assertEqual(system[clade].count, 1)
            visited.append(node.index)
            clades.append(clade)

        system.apply_to_clades(acg, visit)
        self.assertEqual(sorted(visited), [0, 1, 2, 3, 4])
        self.assertEqual(visited[-1], 4)
        self.assertEqual(dict(zip(visited, clades)),
                         {0: 0b001, 1: 0b010, 2: 0b100, 3: 0b011, 4: 0b111})

    def test_apply_to_clades_unknown_clades(self):
        clades = []
        cladesystem.CladeSystem().apply_to_clades(
            simple_acg(CF_A), lambda node, clade: clades.append(clade))
        self.assertEqual(sorted(clades), [0b001, 0b010, 0b011, 0b100, 0b111])

    def test_merge(self):
        acgs = frames(count=10, seed=3)
        whole = cladesystem.CladeSystem()
        first = cladesystem.CladeSystem()
        second = cladesystem.CladeSystem()
        for i, acg in enumerate(acgs):
            whole.add(acg)
            (first if i < 4 else second).add(acg)
        first.merge(second)
        self.assertEqual(sorted(first.clade_map), sorted(whole.clade_map))
        for bits, record in whole.clade_map.items():
            self.assertEqual(first[bits].count, record.count)


class TestConversionAggregator(unittest.TestCase):

    def setUp(self):
        self.system = cladesystem.CladeSystem()
        self.system.register_clades(simple_acg(CF_A))
        self.acgs = [
            simple_acg(CF_A, [(0, 0.5, 2, 1.5, 10, 20),
                              (0, 0.6, 2, 1.6, 12, 22)]),
            simple_acg(CF_A, [(0, 0.4, 2, 1.4, 8, 18),
                              (1, 0.4, 3, 1.4, 30, 35)]),
            simple_acg(CF_A),
            # clade {0, 2} is not a clade of the summary tree
            simple_acg(CF_B, [(3, 1.2, 1, 1.5, 0, 50)]),
        ]
        self.aggregator = cladesystem.ConversionAggregator(self.system)
        for acg in self.acgs:
            self.aggregator.collect_conversions(acg)
        self.locus = self.acgs[0].loci[0]

    def test_grouping_and_support(self):
        summary = self.aggregator.summaries[(0b001, 0b100, self.locus)]
        self.assertEqual(len(summary), 3)
        self.assertEqual(summary.samples, {0, 1})
        self.assertEqual(summary.support(4), 0.5)
        self.assertEqual(len(self.aggregator.summaries), 2)

    def test_threshold_inclusive(self):
        self.assertIsNotNone(self.aggregator.conversion_summary(
            0b001, 0b100, self.locus, 4, 0.5))
        self.assertIsNone(self.aggregator.conversion_summary(
            0b001, 0b100, self.locus, 4, 0.51))
        self.assertIsNone(self.aggregator.conversion_summary(
            0b100, 0b001, self.locus, 4, 0.0))

    def test_gene_flow(self):
        self.assertEqual(self.aggregator.gene_flow(0b001, 0b100),
                         [20, 10, 0, 0])
        self.assertEqual(self.aggregator.gene_flow(0b010, 0b011),
                         [0, 5, 0, 0])
        self.assertEqual(self.aggregator.sample_count, 4)

    def test_consensus_conversion(self):
        summary = self.aggregator.summaries[(0b001, 0b100, self.locus)]
        conv = summary.to_conversion(0, 2, 4, stats.MEDIAN)
        self.assertEqual((conv.node1, conv.node2), (0, 2))
        self.assertEqual(conv.height1, 0.5)
        self.assertEqual(conv.height2, 1.5)
        self.assertEqual((conv.start_site, conv.end_site), (10, 20))
        self.assertEqual(conv.meta_bottom, "height_95%_HPD={0.4,0.6}")
        self.assertEqual(conv.meta_middle,
                         "posterior=0.5, startSite_95%_HPD={8,12}, "
                         "endSite_95%_HPD={18,22}")
        self.assertEqual(conv.meta_top, "height_95%_HPD={1.4,1.6}")
        conv = summary.to_conversion(0, 2, 4, stats.MEAN)
        self.assertEqual(conv.start_site, 10)
        self.assertEqual(conv.end_site, 20)

    def test_merge_offsets_samples(self):
        other = cladesystem.ConversionAggregator(self.system)
        other.collect_conversions(self.acgs[0])
        self.aggregator.merge(other)
        summary = self.aggregator.summaries[(0b001, 0b100, self.locus)]
        self.assertEqual(summary.samples, {0, 1, 4})
        self.assertEqual(len(summary), 5)
        self.assertEqual(self.aggregator.sample_count, 5)


class TestStats(unittest.TestCase):

    def test_summarize(self):
        self.assertEqual(stats.summarize([1, 2, 6], stats.MEAN), 3.0)
        self.assertEqual(stats.summarize([1, 2, 6], stats.MEDIAN), 2.0)
        self.assertEqual(stats.summarize([1, 2, 3, 6], stats.MEDIAN), 2.5)
        with self.assertRaises(ValueError):
            stats.summarize([1.0], "mode")
        with self.assertRaises(ValueError):
            stats.summarize([], stats.MEAN)

    def test_hpd95_positions(self):
        for n, low, high in [(1, 0, 0), (10, 0, 9), (100, 2, 97),
                             (1000, 25, 975)]:
            values = list(range(n))[::-1]
            self.assertEqual(stats.hpd95(values), (low, high))

    def test_round_site(self):
        self.assertEqual(stats.round_site(10.5), 11)
        self.assertEqual(stats.round_site(11.5), 12)
        self.assertEqual(stats.round_site(10.49), 10)
        self.assertEqual(stats.round_site(-0.5), 0)


if __name__ == "__main__":
    unittest.main()
