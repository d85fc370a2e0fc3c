#!/usr/bin/env python3
"""
Rectify a document photo from the command line.

Examples:
    python tools/warp_card.py photo.jpg --template id_back.png --out out/card.png
    python tools/warp_card.py photo.jpg --strategy borders --config config/cardwarp.yaml
    python tools/warp_card.py photo.jpg --template id_back.png --compare expected.png

Exit codes: 0 card written, 1 no card found, 2 unreadable input.
"""
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

from cardwarp.core.config import BorderConfig, FeatureConfig, load_config, merge_config
from cardwarp.core.errors import CardWarpError
from cardwarp.geometry.detect import FeatureWarper, detect_card_by_borders
from cardwarp.geometry.features import match_confidence
from cardwarp.io.ingest import load_bytes, load_image, save_bytes


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Locate a known document in a photo and rectify it.")
    ap.add_argument("image", help="Path to the input photo.")
    ap.add_argument("--strategy", choices=["features", "borders"], default="features")
    ap.add_argument("--template", help="Reference image (required for --strategy features).")
    ap.add_argument("--config", help="YAML file with 'features:' / 'borders:' sections.")
    ap.add_argument("--out", default=None, help="Output PNG. Default: <image_basename>_card.png next to the input.")
    ap.add_argument("--width", type=int, default=None, help="Output width (height follows the aspect).")
    ap.add_argument("--compare", default=None,
                    help="Expected result image; prints how well the output matches it.")
    ap.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    feat_cfg, border_cfg = (load_config(args.config) if args.config
                            else (FeatureConfig(), BorderConfig()))
    if args.width is not None:
        feat_cfg = merge_config(feat_cfg, {"output_width": args.width})
        border_cfg = merge_config(border_cfg, {"output_width": args.width})

    inp = Path(args.image)
    out = Path(args.out) if args.out else inp.with_name(inp.stem + "_card.png")

    try:
        buffer = load_bytes(inp)
        if args.strategy == "features":
            if not args.template:
                print("[ERR] --template is required for the features strategy")
                return 2
            warper = FeatureWarper(feat_cfg)
            reference = warper.generate_reference(args.template)
            res = warper.get_card(buffer, reference)
            print(f"probability={res.probability:.3f}")
            card = res.card
        else:
            card = detect_card_by_borders(buffer, border_cfg)
    except (FileNotFoundError, CardWarpError) as e:
        print(f"[ERR] {e}")
        return 2

    if card is None:
        print("No card found.")
        return 1

    save_bytes(out, card)
    print(f"[OK] rectified card saved -> {out}")

    if args.compare:
        expected = FeatureWarper(feat_cfg).generate_reference(args.compare)
        result_img = load_image(out)
        print(f"similarity={match_confidence(result_img, expected, feat_cfg):.3f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
