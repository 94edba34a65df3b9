"""
AWS AI Services module for the status classifier.
Hosts the pre-trained construction status model behind an Amazon SageMaker endpoint.
"""
import json
import boto3
from typing import List, Tuple, Any, Optional
from .config import config
from .errors import ModelUnavailable
from .logging import logger


# Initialize AWS clients lazily
_sagemaker_client = None
_sagemaker_runtime_client = None


def get_sagemaker_client():
    """Get or create SageMaker control-plane client."""
    global _sagemaker_client
    if _sagemaker_client is None:
        _sagemaker_client = boto3.client('sagemaker', region_name=config.AWS_REGION)
    return _sagemaker_client


def get_sagemaker_runtime_client():
    """Get or create SageMaker Runtime client."""
    global _sagemaker_runtime_client
    if _sagemaker_runtime_client is None:
        _sagemaker_runtime_client = boto3.client('sagemaker-runtime', region_name=config.AWS_REGION)
    return _sagemaker_runtime_client


def parse_classifier_response(result: Any) -> List[Tuple[str, float]]:
    """
    Normalize an endpoint response into (label, score) pairs.

    Accepts either a bare list or {"predictions": [...]}, where each entry is
    {"label": ..., "score"|"confidence": ...} or a [label, score] pair.
    """
    if isinstance(result, dict):
        result = result.get('predictions', [])

    pairs = []
    for entry in result or []:
        if isinstance(entry, dict):
            score = entry.get('score', entry.get('confidence', 0.0))
            pairs.append((str(entry['label']), float(score)))
        else:
            label, score = entry
            pairs.append((str(label), float(score)))
    return pairs


class SageMakerClassifier:
    """Classifier runtime backed by a SageMaker endpoint."""

    def __init__(self, endpoint_name: str, client=None):
        self.endpoint_name = endpoint_name
        self.client = client or get_sagemaker_runtime_client()

    def run_inference(self, image_path: str) -> List[Tuple[str, float]]:
        """
        Score an image against every status class of the model.

        Args:
            image_path: Local path to a JPEG image

        Returns:
            List of (label, score) pairs
        """
        with open(image_path, 'rb') as f:
            body = f.read()

        response = self.client.invoke_endpoint(
            EndpointName=self.endpoint_name,
            ContentType='application/x-image',
            Accept='application/json',
            Body=body
        )

        result = json.loads(response['Body'].read().decode('utf-8'))
        pairs = parse_classifier_response(result)
        logger.info(f"SageMaker endpoint {self.endpoint_name} returned {len(pairs)} scores")
        return pairs


def load_sagemaker_classifier(endpoint_name: Optional[str] = None) -> SageMakerClassifier:
    """
    Resolve the configured endpoint and confirm it is serving.

    Raises:
        ModelUnavailable: No endpoint configured or endpoint not InService
    """
    if endpoint_name is None:
        endpoint_name = config.CLASSIFIER_ENDPOINT_NAME

    if not endpoint_name:
        raise ModelUnavailable('No classifier endpoint configured')

    response = get_sagemaker_client().describe_endpoint(EndpointName=endpoint_name)
    status = response.get('EndpointStatus')
    if status != 'InService':
        raise ModelUnavailable(f"Classifier endpoint {endpoint_name} is {status}")

    return SageMakerClassifier(endpoint_name)
