#!/usr/bin/env python3
"""
Prompt Refinement - Example Usage
=================================

Runs one request through the full refinement pipeline and prints the
refined prompt together with its confidence breakdown.

Usage:
    python examples/refine_example.py --text "Write a function to sort a list"

Requirements:
    - GROQ_API_KEY environment variable (text completion)
    - Optional: OPENROUTER_API_KEY (image captioning)
    - Optional: AWS credentials and ENABLE_TEXTRACT_FALLBACK=true (scanned PDFs)
"""

import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from prompt_refinery.config import Config
from prompt_refinery.errors import PipelineError
from prompt_refinery.services.orchestrator import PipelineRequest, build_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_result(result: dict):
    """Print a human-readable summary of a pipeline result."""
    print("\n" + "=" * 60)
    print("PROMPT REFINEMENT RESULT")
    print("=" * 60)
    print(f"\nPipeline ID: {result['pipeline_id']}")
    print(f"Success: {result['success']}")

    if result['rejected']:
        print(f"Rejected: {result['rejection_reason']}")

    confidence = result['confidence']
    print(f"Overall Confidence: {confidence['overall_confidence']:.1%}")
    for name, value in confidence['scores'].items():
        print(f"  {name:22} {value:.2f}")

    if result['refined_prompt']:
        print("\n" + "-" * 40)
        print("REFINED PROMPT")
        print("-" * 40)
        print(result['refined_prompt'])

    details = result['details']
    if details['improvements']:
        print("\nKey Improvements:")
        for item in details['improvements']:
            print(f"  - {item}")
    if details['recommendations']:
        print("\nRecommendations:")
        for item in details['recommendations']:
            print(f"  - {item}")

    metadata = result['metadata']
    perception = metadata['perception_layer']
    print("\n" + "-" * 40)
    print("TIMING")
    print("-" * 40)
    print(f"Total: {metadata['total_processing_time_ms']}ms")
    print(f"Perception: {perception['wall_time_ms']}ms ({perception['succeeded']} ok, {perception['failed']} failed)")
    print(f"Normalization: {metadata['normalization_layer']['processing_time_ms']}ms")
    for stage, elapsed in metadata['refinement_layer']['stages'].items():
        print(f"  {stage:18} {elapsed}ms")


async def refine(text_inputs, image_urls, document_paths, output_path: str = None):
    orchestrator = build_orchestrator()
    request = PipelineRequest(
        text_inputs=text_inputs,
        image_urls=image_urls,
        document_paths=document_paths
    )

    try:
        result = await orchestrator.execute_pipeline(request)
    except PipelineError as e:
        logger.error(f"Pipeline failed in {e.layer} layer: {e.message}")
        print(json.dumps(e.to_response(), indent=2))
        return None

    output_data = result.to_dict()
    print_result(output_data)

    if output_path:
        with open(output_path, 'w') as f:
            json.dump(output_data, f, indent=2)
        logger.info(f"Output saved to: {output_path}")

    return result


def main():
    parser = argparse.ArgumentParser(
        description='Multi-Modal Prompt Refinement',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Refine a single text input
    python refine_example.py --text "Write a function to sort a list"

    # Combine text, an image and a PDF, and save the JSON result
    python refine_example.py --text "Summarize this" \\
        --image-url https://example.com/chart.png --document report.pdf -o result.json
        """
    )

    parser.add_argument('--text', action='append', default=[], help='Text input (repeatable)')
    parser.add_argument('--image-url', action='append', default=[], help='Hosted https image URL (repeatable)')
    parser.add_argument('--document', action='append', default=[], help='Path to a PDF (repeatable)')
    parser.add_argument('-o', '--output', help='Path to save JSON output')

    args = parser.parse_args()

    if not (args.text or args.image_url or args.document):
        parser.print_help()
        print("\nError: Provide at least one --text, --image-url or --document")
        sys.exit(1)

    try:
        Config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    result = asyncio.run(refine(args.text, args.image_url, args.document, args.output))
    if result is None:
        sys.exit(1)


if __name__ == '__main__':
    main()
