#!/usr/bin/env python3
"""
Check that a YOLO ONNX model loads and produces sensible output.

This utility helps verify that:
1. onnxruntime is installed and which execution providers it offers
2. The model loads on the preferred backend (or which one it fell back to)
3. The output tensor matches the configured layout and class count
4. Detection works end to end on an image

Usage:
    python tools/check_model.py --model models/yolov8n.onnx
    python tools/check_model.py --model models/yolov8n.onnx --image street.jpg --save out.jpg
    python tools/check_model.py --model model.onnx --layout box_major --cpu-only
"""

import argparse
import os
import sys
import time

# Add project directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

import cv2
import numpy as np


def check_providers():
    """Print the execution providers this onnxruntime build offers."""
    try:
        import onnxruntime as ort
    except ImportError:
        print("❌ onnxruntime not installed!")
        print("   Install with: pip install onnxruntime (or onnxruntime-gpu)")
        return None
    providers = ort.get_available_providers()
    print(f"onnxruntime {ort.__version__}, providers: {', '.join(providers)}")
    return providers


def check_model(model, image=None, layout="channel_major", num_classes=80,
                conf_threshold=0.5, cpu_only=False, save=None):
    from detection.decoder import TensorDecoder
    from detection.yolo_detector import YoloOnnxDetector
    from models.config import DetectorConfig
    from models.errors import DetectionError, FatalLoadError
    from render.overlay import draw_detections

    if check_providers() is None:
        return 1

    cfg = DetectorConfig(
        model=model,
        layout=layout,
        num_classes=num_classes,
        conf_threshold=conf_threshold,
        backends=["cpu"] if cpu_only else ["gpu", "cpu"],
    )
    detector = YoloOnnxDetector(cfg)

    print(f"\n📦 Loading model: {model}")
    start = time.time()
    try:
        backend = detector.load()
    except FatalLoadError as e:
        print(f"❌ {e}")
        for kind, reason in e.failures.items():
            print(f"   {kind}: {reason}")
        return 1
    print(f"   Loaded in {time.time() - start:.2f}s on {backend}")

    # Raw output shape against the configured layout
    size = cfg.input_size
    output = detector.session.run(np.zeros((1, 3, size, size), dtype=np.float32))
    print(f"   Output shape: {tuple(output.shape)}")
    decoder = TensorDecoder(layout, num_classes=num_classes)
    try:
        proposals = decoder.proposals(output)
        print(f"   ✅ Matches {layout} with {num_classes} classes ({proposals.shape[0]} proposals)")
    except DetectionError as e:
        print(f"   ❌ {e}")
        detector.close()
        return 1

    if image:
        frame = cv2.imread(image)
        if frame is None:
            print(f"❌ Could not read image: {image}")
            detector.close()
            return 1

        detections = detector.detect(frame)
        timings = ", ".join(f"{k}={v:.1f}ms" for k, v in detector.last_timings_ms.items())
        print(f"\n🔍 {len(detections)} detections ({timings})")
        for det in detections:
            x1, y1, x2, y2 = det.bbox.as_int_tuple()
            print(f"   {det.label:<15} {det.score:.2f}  [{x1}, {y1}, {x2}, {y2}]")

        if save:
            draw_detections(frame, detections)
            cv2.imwrite(save, frame)
            print(f"\n💾 Saved annotated image: {save}")

    detector.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Check a YOLO ONNX model")
    parser.add_argument("--model", required=True, help="Path to .onnx model")
    parser.add_argument("--image", help="Image to run detection on")
    parser.add_argument("--layout", default="channel_major", choices=["box_major", "channel_major"])
    parser.add_argument("--num-classes", type=int, default=80)
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold")
    parser.add_argument("--cpu-only", action="store_true", help="Skip GPU providers")
    parser.add_argument("--save", help="Write the annotated image here")
    args = parser.parse_args()

    return check_model(
        args.model,
        image=args.image,
        layout=args.layout,
        num_classes=args.num_classes,
        conf_threshold=args.conf,
        cpu_only=args.cpu_only,
        save=args.save,
    )


if __name__ == "__main__":
    sys.exit(main())
