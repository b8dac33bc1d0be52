import random
import unittest

from acgannotator import regions
from acgannotator.acgbook import Conversion, ConversionGraph, Locus

SIMPLE_CF = "((0:1.0,1:1.0)3:1.0,2:2.0)4:0.0"


def make_acg(intervals, length=100):
    acg = ConversionGraph.from_string(SIMPLE_CF, [Locus(length=length)])
    for start, end in intervals:
        acg.add_conversion(Conversion(acg.loci[0], 0, 0.5, 2, 1.5, start, end))
    return acg


class TestRegionList(unittest.TestCase):

    def check_partition(self, region_list, length):
        self.assertEqual(region_list[0].start, 0)
        self.assertEqual(region_list[-1].end, length)
        for left, right in zip(region_list, region_list[1:]):
            self.assertEqual(left.end, right.start)
        for region in region_list:
            self.assertGreater(region.length, 0)

    def test_no_conversions(self):
        region_list = regions.RegionList(make_acg([]))
        self.assertEqual(len(region_list), 1)
        self.assertEqual((region_list[0].start, region_list[0].end), (0, 100))
        self.assertFalse(region_list[0].has_conversions())

    def test_breakpoints(self):
        acg = make_acg([(10, 30), (20, 50), (50, 60)])
        region_list = regions.RegionList(acg)
        self.check_partition(region_list, 100)
        self.assertEqual([(r.start, r.end) for r in region_list],
                         [(0, 10), (10, 20), (20, 30), (30, 50), (50, 60),
                          (60, 100)])
        convs = acg.get_conversions()
        self.assertEqual(region_list[1].conversions, [convs[0]])
        self.assertEqual(region_list[2].conversions, convs[:2])
        self.assertEqual(region_list[3].conversions, [convs[1]])
        self.assertEqual(region_list[4].conversions, [convs[2]])
        self.assertEqual(region_list[5].conversions, [])

    def test_conversion_at_locus_ends(self):
        region_list = regions.RegionList(make_acg([(0, 100)]))
        self.assertEqual(len(region_list), 1)
        self.assertTrue(region_list[0].has_conversions())

    def test_identical_intervals(self):
        region_list = regions.RegionList(make_acg([(10, 20), (10, 20)]))
        self.assertEqual(len(region_list), 3)
        self.assertEqual(len(region_list[1].conversions), 2)

    def test_region_at(self):
        region_list = regions.RegionList(make_acg([(10, 30)]))
        self.assertEqual(region_list.region_at(0).end, 10)
        self.assertEqual(region_list.region_at(10).start, 10)
        self.assertEqual(region_list.region_at(29).start, 10)
        self.assertEqual(region_list.region_at(30).start, 30)
        self.assertEqual(region_list.region_at(99).end, 100)
        self.assertTrue(region_list.region_at(15).contains(15))
        with self.assertRaises(IndexError):
            region_list.region_at(100)
        with self.assertRaises(IndexError):
            region_list.region_at(-1)

    def test_random_intervals(self):
        for seed in range(20):
            rng = random.Random(seed)
            length = rng.randint(1, 200)
            intervals = []
            for _ in range(rng.randint(0, 8)):
                start = rng.randrange(length)
                intervals.append((start, rng.randint(start + 1, length)))
            acg = make_acg(intervals, length)
            region_list = regions.RegionList(acg)
            self.check_partition(region_list, length)
            convs = acg.get_conversions()
            for region in region_list:
                expected = [c for c in convs if c.start_site <= region.start
                            and region.end <= c.end_site]
                self.assertEqual(region.conversions, expected)
                self.assertIs(region_list.region_at(region.start), region)

    def test_update_after_new_conversion(self):
        acg = make_acg([(10, 30)])
        region_list = regions.RegionList(acg)
        self.assertEqual(len(region_list), 3)
        acg.add_conversion(Conversion(acg.loci[0], 1, 0.5, 2, 1.5, 40, 45))
        region_list.update_region_list()
        self.assertEqual(len(region_list), 5)
        self.check_partition(region_list, 100)

    def test_unknown_length(self):
        acg = ConversionGraph.from_string("[&0,10,0.5,2,30,1.5] " + SIMPLE_CF)
        region_list = regions.RegionList(acg)
        self.assertEqual(region_list[-1].end, 30)
        with self.assertRaises(ValueError):
            regions.RegionList(ConversionGraph.from_string(SIMPLE_CF))


if __name__ == "__main__":
    unittest.main()
