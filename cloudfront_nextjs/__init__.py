"""cloudfront_nextjs — Route a Next.js export through CloudFront with Lambda@Edge.

Provides:
    - Build manifest reading and canonicalization
    - Deterministic Lambda@Edge deployment package synthesis
    - Idempotent Lambda function, permission and distribution reconciliation
    - CloudFront cache invalidation and deployment polling
"""

__version__ = "0.2.0"
