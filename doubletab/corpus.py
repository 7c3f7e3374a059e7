"""Seed corpus for the knowledge repository."""

from __future__ import annotations

OTHER_DATABASES = """Other databases support.
Currently only SQLite is supported as the application database. Support for other databases
such as PostgreSQL or MySQL is planned. Suggest a database you'd like to see supported by
starting a discussion in the project repository.
"""

SERVER_GO_SAMPLE = """Example of a server implementation in Go based on OpenAPI 3.0 spec.

package api

import (
	"database/sql"
	"encoding/json"
	"errors"
	"net/http"

	"github.com/google/uuid"
	"github.com/jmoiron/sqlx"
	openapi_types "github.com/oapi-codegen/runtime/types"
)

type Server struct {
	DB *sqlx.DB
}

func (s Server) ListResources(w http.ResponseWriter, r *http.Request) {
	resources := []Resource{}
	err := s.DB.SelectContext(r.Context(), &resources, "SELECT * FROM resources")
	if err != nil {
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}

	w.Header().Set("Content-Type", "application/json")
	if err = json.NewEncoder(w).Encode(resources); err != nil {
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}
}

func (s Server) GetResource(w http.ResponseWriter, r *http.Request, id openapi_types.UUID) {
	resource := Resource{}
	err := s.DB.GetContext(r.Context(), &resource, "SELECT * FROM resources WHERE id = ?", id)
	if err != nil {
		if errors.Is(err, sql.ErrNoRows) {
			http.Error(w, err.Error(), http.StatusNotFound)
			return
		}
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}

	w.Header().Set("Content-Type", "application/json")
	if err = json.NewEncoder(w).Encode(resource); err != nil {
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}
}

func (s Server) CreateResource(w http.ResponseWriter, r *http.Request) {
	var resource Resource
	if err := json.NewDecoder(r.Body).Decode(&resource); err != nil {
		http.Error(w, err.Error(), http.StatusBadRequest)
		return
	}

	resource.Id = uuid.New()

	_, err := s.DB.NamedExecContext(r.Context(), "INSERT INTO resources (id, name, email) VALUES (:id, :name, :email)", &resource)
	if err != nil {
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}

	w.WriteHeader(http.StatusCreated)
}

func (s Server) DeleteResource(w http.ResponseWriter, r *http.Request, id openapi_types.UUID) {
	_, err := s.DB.ExecContext(r.Context(), "DELETE FROM resources WHERE id = ?", id)
	if err != nil {
		http.Error(w, err.Error(), http.StatusInternalServerError)
		return
	}

	w.WriteHeader(http.StatusNoContent)
}
"""

SEED_CORPUS: tuple[str, ...] = (OTHER_DATABASES, SERVER_GO_SAMPLE)
