# utils/proof_storage.py
"""
Azure Blob Storage implementation of the ProofStorage collaborator.

Only the returned blob URL is kept in the database; file bytes never are.
"""
import os
import uuid
from typing import BinaryIO, Optional

from azure.storage.blob import BlobServiceClient, ContentSettings

PROOF_CONTAINER = os.getenv("AZURE_PROOF_CONTAINER", "payment-proofs")


class AzureBlobProofStorage:
     """Uploads payment proofs to a blob container under a random name."""

     def __init__(self, blob_service: BlobServiceClient, container: str = PROOF_CONTAINER, prefix: str = ""):
          self.blob_service = blob_service
          self.container = container
          self.prefix = prefix

     @classmethod
     def from_env(cls, container: Optional[str] = None) -> "AzureBlobProofStorage":
          account = os.getenv("AZURE_STORAGE_ACCOUNT")
          key = os.getenv("AZURE_STORAGE_KEY")
          blob_service = BlobServiceClient.from_connection_string(
               f"DefaultEndpointsProtocol=https;"
               f"AccountName={account};"
               f"AccountKey={key};"
               f"EndpointSuffix=core.windows.net"
          )
          return cls(blob_service, container or PROOF_CONTAINER)

     def store(self, stream: BinaryIO, filename: str, content_type: str) -> str:
          ext = os.path.splitext(filename)[1]
          blob_name = f"{self.prefix}{uuid.uuid4()}{ext}"
          blob_client = self.blob_service.get_blob_client(container=self.container, blob=blob_name)
          blob_client.upload_blob(
               stream,
               overwrite=False,
               content_settings=ContentSettings(content_type=content_type),
          )
          return blob_client.url

